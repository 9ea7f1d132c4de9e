from __future__ import annotations

"""Report required environment variables that are missing or blank."""

import os
from dataclasses import dataclass
from typing import List


@dataclass(frozen=True)
class RequiredEnvVar:
    name: str
    description: str
    example: str
    required: bool = True


REQUIRED_ENV_VARS: List[RequiredEnvVar] = [
    RequiredEnvVar("V0_API_KEY", "Your v0 API key for generating apps", "v0_sk_..."),
    RequiredEnvVar("JWT_SECRET", "Secret used to sign session tokens", "change-me-to-a-long-random-string"),
]


def check_required_env_vars() -> List[RequiredEnvVar]:
    missing: List[RequiredEnvVar] = []
    for var in REQUIRED_ENV_VARS:
        value = os.getenv(var.name)
        if not value or not value.strip():
            missing.append(var)
    return missing


def has_all_required_env_vars() -> bool:
    return not check_required_env_vars()
