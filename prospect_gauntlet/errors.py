"""Exceptions raised by the prospect gauntlet."""

from typing import Optional


class GauntletError(Exception):
    """Base class for gauntlet failures."""


class InvalidTriggerError(GauntletError):
    """A run was requested without a company number or prospect id."""


class CompanyNotFoundError(GauntletError):
    """The company number is not present in the company directory."""

    def __init__(self, company_number: str):
        self.company_number = company_number
        super().__init__(f"Company {company_number} not found in database")


class ProspectNotFoundError(GauntletError):
    """A prospect id did not resolve to a stored prospect."""

    def __init__(self, prospect_id: int):
        self.prospect_id = prospect_id
        super().__init__(f"Prospect {prospect_id} not found")


class RegistryError(GauntletError):
    """A registry adapter call failed."""

    def __init__(self, source: str, message: str, status_code: Optional[int] = None):
        self.source = source
        self.status_code = status_code
        super().__init__(f"{source}: {message}")


class RegistryTimeoutError(RegistryError):
    """A registry call exceeded its timeout."""


class MalformedResponseError(RegistryError):
    """A registry returned a payload that could not be interpreted."""
