"""Core Application Layer: the gateway, the auth session and command handling.

Connects the domain layer with the infrastructure layer through interfaces.
"""
