"""Validators for extraction request inputs."""

from imgharvest.validators.url_validator import is_private_ip, validate_url

__all__ = ["is_private_ip", "validate_url"]
