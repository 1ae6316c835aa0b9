import random
from datetime import timezone
from decimal import Decimal

import factory
from django.contrib.auth import get_user_model
from faker import Faker

from marketplace.models import Order, OrderItem, Product


User = get_user_model()
fake = Faker()


class UserFactory(factory.django.DjangoModelFactory):
    class Meta:
        model = User
        skip_postgeneration_save = True

    username = factory.Sequence(lambda n: f"user_{n}")
    email = factory.Sequence(lambda n: f"user_{n}@example.com")
    first_name = factory.Faker("first_name")
    last_name = factory.Faker("last_name")
    password = factory.PostGenerationMethodCall("set_password", "defaultpassword")
    is_active = True


class SellerFactory(UserFactory):
    username = factory.Sequence(lambda n: f"seller_{n}")
    email = factory.Sequence(lambda n: f"seller_{n}@example.com")


class AdminFactory(UserFactory):
    is_superuser = True
    is_staff = True
    username = factory.Sequence(lambda n: f"admin_{n}")
    email = factory.Sequence(lambda n: f"admin_{n}@example.com")


class ProductFactory(factory.django.DjangoModelFactory):
    class Meta:
        model = Product

    title = factory.LazyFunction(lambda: fake.catch_phrase()[:200])
    seller = factory.SubFactory(SellerFactory)
    price = factory.LazyFunction(lambda: Decimal(f"{random.randint(10, 500)}.00"))
    is_active = True


class OrderFactory(factory.django.DjangoModelFactory):
    """
    Order as checkout leaves it. Use the traits to move it along:

        OrderFactory(paid=True, confirmed=True)   # ready for release
    """

    class Meta:
        model = Order

    buyer = factory.SubFactory(UserFactory)
    seller = factory.SubFactory(SellerFactory)
    status = Order.STATUS_PENDING
    payment_status = Order.PAYMENT_PENDING
    total_amount = Decimal("100.00")
    shipping_address = factory.LazyFunction(
        lambda: {
            "street": fake.street_address(),
            "city": fake.city(),
            "postal_code": fake.postcode(),
            "country": fake.country(),
        }
    )

    class Params:
        paid = factory.Trait(payment_status=Order.PAYMENT_PAID)
        confirmed = factory.Trait(confirmed_by_buyer=True)
        released = factory.Trait(
            status=Order.STATUS_COMPLETED,
            payment_status=Order.PAYMENT_PAID,
            confirmed_by_buyer=True,
            payment_released=True,
            payment_released_at=factory.Faker("date_time_this_month", tzinfo=timezone.utc),
            commission_rate=Decimal("10.00"),
            admin_commission=factory.LazyAttribute(lambda o: (o.total_amount / 10).quantize(Decimal("0.01"))),
            seller_amount=factory.LazyAttribute(
                lambda o: o.total_amount - (o.total_amount / 10).quantize(Decimal("0.01"))
            ),
        )


class OrderItemFactory(factory.django.DjangoModelFactory):
    class Meta:
        model = OrderItem

    order = factory.SubFactory(OrderFactory)
    product = factory.SubFactory(ProductFactory)
    seller = factory.LazyAttribute(lambda o: o.product.seller)
    quantity = 1
    unit_price = factory.LazyAttribute(lambda o: o.product.price)
    total_price = factory.LazyAttribute(lambda o: o.unit_price * o.quantity)
    product_title = factory.LazyAttribute(lambda o: o.product.title)
