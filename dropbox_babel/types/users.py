"""Data types for the users namespace."""

from __future__ import annotations

from functools import partial
from typing import ClassVar

from pydantic import Field, field_validator

from dropbox_babel.types.base import BabelStruct, BabelUnion
from dropbox_babel.validators import array_validator, nullable_validator, string_validator

ACCOUNT_ID_LENGTH = 40

_account_id_validator = partial(
    string_validator,
    min_length=ACCOUNT_ID_LENGTH,
    max_length=ACCOUNT_ID_LENGTH,
)


class GetAccountArg(BabelStruct):
    # A user's account identifier.
    account_id: str

    @field_validator("account_id")
    @classmethod
    def _check_account_id(cls, value: str) -> str:
        _account_id_validator(value)
        return value


class GetAccountBatchArg(BabelStruct):
    # List of user account identifiers, without duplicates.
    account_ids: list[str]

    @field_validator("account_ids")
    @classmethod
    def _check_account_ids(cls, value: list[str]) -> list[str]:
        array_validator(value, min_items=1, item_validator=_account_id_validator)
        return value


class GetAccountError(BabelUnion):
    """
    no_account: The specified account_id does not exist.
    """

    TAGS: ClassVar[tuple[str, ...]] = ("no_account", "other")

    @property
    def is_no_account(self) -> bool:
        return self.tag == "no_account"


class GetAccountBatchError(BabelUnion):
    """
    no_account: The value is an account ID specified in the request that
    does not exist.
    """

    TAGS: ClassVar[tuple[str, ...]] = ("no_account", "other")

    no_account: str | None = None

    @property
    def is_no_account(self) -> bool:
        return self.tag == "no_account"


class Name(BabelStruct):
    """Representations for a person's name to assist with internationalization."""

    given_name: str
    surname: str
    familiar_name: str
    display_name: str
    abbreviated_name: str | None = None


class AccountType(BabelUnion):
    TAGS: ClassVar[tuple[str, ...]] = ("basic", "pro", "business")


class Account(BabelStruct):
    """The amount of detail revealed about an account depends on the user being queried."""

    account_id: str
    name: Name
    email: str
    email_verified: bool
    disabled: bool
    profile_photo_url: str | None = None

    @field_validator("account_id")
    @classmethod
    def _check_account_id(cls, value: str) -> str:
        _account_id_validator(value)
        return value


class BasicAccount(Account):
    """Basic information about any account."""

    # Whether this user is a teammate of the current user.
    is_teammate: bool
    team_member_id: str | None = None


class Team(BabelStruct):
    id: str
    name: str


class FullAccount(Account):
    """Detailed information about the current user's account."""

    locale: str
    referral_link: str
    is_paired: bool
    account_type: AccountType
    country: str | None = None
    team: Team | None = None
    team_member_id: str | None = None

    @field_validator("locale")
    @classmethod
    def _check_locale(cls, value: str) -> str:
        string_validator(value, min_length=2)
        return value

    @field_validator("country")
    @classmethod
    def _check_country(cls, value: str | None) -> str | None:
        nullable_validator(partial(string_validator, min_length=2, max_length=2), value)
        return value


class IndividualSpaceAllocation(BabelStruct):
    # The total space allocated to the user's account (bytes).
    allocated: int = Field(ge=0)


class TeamSpaceAllocation(BabelStruct):
    # The total space currently used by the user's team (bytes).
    used: int = Field(ge=0)
    # The total space allocated to the user's team (bytes).
    allocated: int = Field(ge=0)


class SpaceAllocation(BabelUnion):
    """Space is allocated differently based on the type of account."""

    TAGS: ClassVar[tuple[str, ...]] = ("individual", "team", "other")
    STRUCT_VARIANTS: ClassVar[tuple[str, ...]] = ("individual", "team")

    individual: IndividualSpaceAllocation | None = None
    team: TeamSpaceAllocation | None = None


class SpaceUsage(BabelStruct):
    """Information about a user's space usage and quota."""

    # The user's total space usage (bytes).
    used: int = Field(ge=0)
    allocation: SpaceAllocation
