"""Reminder message rendering"""

import re
from datetime import date
from typing import Mapping

from .exceptions import RenderError

DEFAULT_TEMPLATE_NAME = "default"
DEFAULT_TEMPLATE_CONTENT = (
    "Ciao {nome}, ti ricordiamo il tuo appuntamento domani alle {ora} per il trattamento "
    "{servizio} presso il nostro centro estetico in {location}. Ti aspettiamo 💖"
)

TIME_TO_BE_CONFIRMED = "orario da confermare"
GENERIC_TREATMENT = "trattamento"

PLACEHOLDERS = ("nome", "cognome", "ora", "servizio", "location", "data")
_PLACEHOLDER_RE = re.compile(r"\{(" + "|".join(PLACEHOLDERS) + r")\}")


def format_italian_date(value: date) -> str:
    """Short Italian date, e.g. 5/3/2025"""
    return f"{value.day}/{value.month}/{value.year}"


def build_placeholder_values(candidate, location: str) -> dict[str, str]:
    """Map every recognized token to its value for one appointment"""
    return {
        "nome": candidate.first_name or "",
        "cognome": candidate.last_name or "",
        "ora": candidate.appointment_time or TIME_TO_BE_CONFIRMED,
        "servizio": candidate.treatment or GENERIC_TREATMENT,
        "location": location,
        "data": format_italian_date(candidate.appointment_date),
    }


def substitute(template: str, values: Mapping[str, str]) -> str:
    """
    Replace every occurrence of the recognized tokens in one pass.

    Substituted values are not re-scanned, so a client named "{ora}" stays
    literal. Unknown tokens such as {foo} are left untouched.
    """
    return _PLACEHOLDER_RE.sub(lambda m: values[m.group(1)], template)


def render_message(template: str, candidate, location: str) -> str:
    try:
        return substitute(template, build_placeholder_values(candidate, location))
    except (AttributeError, KeyError, TypeError, ValueError) as e:
        raise RenderError(f"Failed to render message: {e}") from e
