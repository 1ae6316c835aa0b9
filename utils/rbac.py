from django.contrib.auth import get_user_model


def _fetch_user_from_db(user):
    """Fetch a fresh copy of the user from the DB with only the fields we need.

    Returns None if the user is not authenticated or no longer exists.
    """
    if not getattr(user, "is_authenticated", False):
        return None
    User = get_user_model()
    return User.objects.only("id", "is_staff", "is_superuser", "is_active").filter(pk=getattr(user, "pk", None)).first()


def is_admin(user) -> bool:
    """Admin check verified against the database, never against request state."""
    db_user = _fetch_user_from_db(user)
    if not db_user or not db_user.is_active:
        return False
    return bool(db_user.is_superuser or db_user.is_staff)

