"""Helpers shared by test modules (login shortcuts, Stripe error factories)."""

import stripe


def login(client, email, password):
    return client.post("/auth/login", json={"email": email, "password": password})


def login_member(client):
    return login(client, "jane@example.com", "janepass")


def login_admin(client):
    return login(client, "admin@members.local", "admin123")


def not_found_error(message="No such object"):
    return stripe.InvalidRequestError(
        message, "id", code="resource_missing", http_status=404
    )
