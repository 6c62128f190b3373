"""Pieces shared by the webhook and the controller."""
