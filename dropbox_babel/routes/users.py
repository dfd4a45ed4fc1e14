"""Routes for the users namespace."""

from __future__ import annotations

from dropbox_babel.client.babel import BabelClient, BabelRpcRequest
from dropbox_babel.kernel.serialization import VOID_SERIALIZER, Serializer
from dropbox_babel.types.users import (
    BasicAccount,
    FullAccount,
    GetAccountArg,
    GetAccountBatchArg,
    GetAccountBatchError,
    GetAccountError,
    SpaceUsage,
)

_GET_ACCOUNT_ARG = Serializer(GetAccountArg)
_GET_ACCOUNT_BATCH_ARG = Serializer(GetAccountBatchArg)
_BASIC_ACCOUNT = Serializer(BasicAccount)
_BASIC_ACCOUNT_LIST = Serializer(list[BasicAccount])
_FULL_ACCOUNT = Serializer(FullAccount)
_SPACE_USAGE = Serializer(SpaceUsage)
_GET_ACCOUNT_ERROR = Serializer(GetAccountError)
_GET_ACCOUNT_BATCH_ERROR = Serializer(GetAccountBatchError)


class UsersRoutes:
    def __init__(self, client: BabelClient):
        self.client = client

    def get_account(
        self,
        account_id: str,
    ) -> BabelRpcRequest[BasicAccount, GetAccountError]:
        """
        Get information about a user's account.

        Args:
            account_id: A user's account identifier

        Returns:
            A request resolving to a BasicAccount, or a GetAccountError route error
        """
        request = GetAccountArg(account_id=account_id)
        return BabelRpcRequest(
            self.client,
            host="meta",
            route="/users/get_account",
            params=_GET_ACCOUNT_ARG.serialize(request),
            response_serializer=_BASIC_ACCOUNT,
            error_serializer=_GET_ACCOUNT_ERROR,
        )

    def get_current_account(self) -> BabelRpcRequest[FullAccount, None]:
        """Get information about the current user's account."""
        return BabelRpcRequest(
            self.client,
            host="meta",
            route="/users/get_current_account",
            params=VOID_SERIALIZER.serialize(None),
            response_serializer=_FULL_ACCOUNT,
            error_serializer=VOID_SERIALIZER,
        )

    def get_space_usage(self) -> BabelRpcRequest[SpaceUsage, None]:
        """Get the space usage information for the current user's account."""
        return BabelRpcRequest(
            self.client,
            host="meta",
            route="/users/get_space_usage",
            params=VOID_SERIALIZER.serialize(None),
            response_serializer=_SPACE_USAGE,
            error_serializer=VOID_SERIALIZER,
        )

    def get_account_batch(
        self,
        account_ids: list[str],
    ) -> BabelRpcRequest[list[BasicAccount], GetAccountBatchError]:
        """
        Get information about multiple user accounts. At most 300 accounts
        may be queried per request.

        Args:
            account_ids: List of user account identifiers, without duplicates
        """
        request = GetAccountBatchArg(account_ids=account_ids)
        return BabelRpcRequest(
            self.client,
            host="meta",
            route="/users/get_account_batch",
            params=_GET_ACCOUNT_BATCH_ARG.serialize(request),
            response_serializer=_BASIC_ACCOUNT_LIST,
            error_serializer=_GET_ACCOUNT_BATCH_ERROR,
        )
