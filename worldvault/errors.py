# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Human-friendly error message helpers for worldvault.

These helpers centralize wording for common configuration and
precondition errors so that all modules present consistent,
actionable messages.
"""


def explain_missing_bucket_env() -> str:
    """
    Explain that the bucket environment variable is missing.
    """

    return (
        "Object storage bucket is not configured. "
        "Set the DATA_BUCKET_NAME (or S3_BUCKET) environment variable or pass bucket=... to create_config()."
    )


def explain_invalid_int_env(name: str, value: str | None) -> str:
    """
    Explain that a numeric environment variable is invalid.
    """

    return (
        f"Invalid {name} value: {value!r}. "
        "It must be a positive integer."
    )


def explain_missing_curseforge_key() -> str:
    """
    Explain that CurseForge installs need an API key.
    """

    return (
        "CURSEFORGE_API_KEY is not configured. "
        "CurseForge requires an API key for every metadata request."
    )


def explain_maintenance_required() -> str:
    """
    Explain that the operation needs maintenance mode.
    """

    return (
        "Maintenance mode must be enabled before changing server files or installing a modpack. "
        "Stop the server and enter maintenance mode first."
    )


def explain_path_outside_roots(path: str, roots: tuple[str, ...]) -> str:
    """
    Explain that a path escapes every managed root.
    """

    return f"Path is outside managed roots: {path!r} (allowed: {', '.join(roots)})"
