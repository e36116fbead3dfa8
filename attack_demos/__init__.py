"""
Security vignettes built on narrative_core.

Each vignette is a short timed story showing one vulnerability class:
SQL injection, XSS, IDOR, CSRF and command injection.
"""

from narrative_core.errors import ConfigurationError

from attack_demos.command_injection import CommandInjectionVignette
from attack_demos.csrf import CSRFVignette
from attack_demos.idor import IDORVignette
from attack_demos.session import DemoSession
from attack_demos.sqli import SQLInjectionVignette
from attack_demos.types import HostCommand, Narration, StageScript, Vignette
from attack_demos.xss import XSSVignette

VIGNETTES: dict[str, type[Vignette]] = {
    cls.key: cls
    for cls in (
        SQLInjectionVignette,
        XSSVignette,
        IDORVignette,
        CSRFVignette,
        CommandInjectionVignette,
    )
}


def get_vignette(key: str) -> type[Vignette]:
    """
    Look up a vignette class by key.

    Raises:
        ConfigurationError: If no vignette has that key
    """
    try:
        return VIGNETTES[key]
    except KeyError:
        raise ConfigurationError(
            f"unknown vignette (available: {', '.join(VIGNETTES)})", subject=key
        ) from None


__all__ = [
    "VIGNETTES",
    "CSRFVignette",
    "CommandInjectionVignette",
    "DemoSession",
    "HostCommand",
    "IDORVignette",
    "Narration",
    "SQLInjectionVignette",
    "StageScript",
    "Vignette",
    "XSSVignette",
    "get_vignette",
]
