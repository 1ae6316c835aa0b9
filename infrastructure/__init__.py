"""
Infrastructure Package
======================

Provides abstraction layers for external dependencies following the Dependency Inversion Principle.

Modules:
    - email: Status email dispatch abstraction (HTTP endpoint, mock)
    - container: Service container wiring the ledger, settlement and outbox services

This package enables:
    - Easy testing with mock implementations
    - Switching between providers without code changes
    - Loose coupling between business logic and infrastructure
"""
