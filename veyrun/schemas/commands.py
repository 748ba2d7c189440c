"""Inbound message commands and the reply envelope.

Every UI surface (popup, confirmation window, page relay, debug page) talks
to the engine by sending one of these commands. Replies always use the
``Reply`` envelope: ``{"ok": true, ...payload}`` or
``{"ok": false, "error": "..."}``.
"""

from __future__ import annotations

from typing import Annotated, Any, Literal, Union

from pydantic import ConfigDict, Field, TypeAdapter

from .base import BaseVeyrunModel, TabId


class BaseCommand(BaseVeyrunModel):
    """Fields shared by every command."""

    sender: str | None = Field(None, alias="from")


class Ping(BaseCommand):
    type: Literal["ping"]


class GetStatus(BaseCommand):
    type: Literal["getStatus"]


class GetLastEvent(BaseCommand):
    type: Literal["getLastEvent"]
    tab_id: TabId


class ParsePaymentRequired(BaseCommand):
    type: Literal["parsePaymentRequired"]
    value: str


class WalletStatus(BaseCommand):
    type: Literal["walletStatus"]


class WalletCreate(BaseCommand):
    type: Literal["walletCreate"]


class WalletImport(BaseCommand):
    type: Literal["walletImport"]
    private_key: str


class WalletExportKey(BaseCommand):
    type: Literal["walletExportKey"]


class WalletSign(BaseCommand):
    type: Literal["walletSign"]
    payload: str


class WalletChain(BaseCommand):
    type: Literal["walletChain"]


class WalletBalance(BaseCommand):
    type: Literal["walletBalance"]


class PayWithVeyrun(BaseCommand):
    """Operator-confirmed payment for the tab's captured 402."""

    type: Literal["payWithVeyrun"]
    tab_id: TabId


class PayWithVeyrunDirect(BaseCommand):
    """Page-originated payment request; always held for confirmation."""

    type: Literal["payWithVeyrunDirect"]
    tab_id: TabId
    requirement: dict[str, Any]
    url: str
    method: str = "GET"
    description: str | None = None
    window: dict[str, int] | None = None


class GetPendingPayment(BaseCommand):
    type: Literal["getPendingPayment"]
    tab_id: TabId


class ConfirmPendingPayment(BaseCommand):
    type: Literal["confirmPendingPayment"]
    tab_id: TabId


class CancelPendingPayment(BaseCommand):
    type: Literal["cancelPendingPayment"]
    tab_id: TabId


class ListReceipts(BaseCommand):
    type: Literal["listReceipts"]


class OpenTopup(BaseCommand):
    type: Literal["openTopup"]


Command = Annotated[
    Union[
        Ping,
        GetStatus,
        GetLastEvent,
        ParsePaymentRequired,
        WalletStatus,
        WalletCreate,
        WalletImport,
        WalletExportKey,
        WalletSign,
        WalletChain,
        WalletBalance,
        PayWithVeyrun,
        PayWithVeyrunDirect,
        GetPendingPayment,
        ConfirmPendingPayment,
        CancelPendingPayment,
        ListReceipts,
        OpenTopup,
    ],
    Field(discriminator="type"),
]

_command_adapter: TypeAdapter[Command] = TypeAdapter(Command)


def parse_command(message: dict[str, Any]) -> Command:
    """Validate a raw message dict into a typed command.

    Raises:
        pydantic.ValidationError: If the message type is unknown or a
            required field is missing.
    """
    return _command_adapter.validate_python(message)


class Reply(BaseVeyrunModel):
    """Uniform reply envelope for every command.

    Payload fields (``receipt``, ``pending``, ``status`` ...) are carried as
    extra attributes and serialized alongside ``ok``.
    """

    model_config = ConfigDict(extra="allow")

    ok: bool
    error: str | None = None
    code: str | None = None

    @classmethod
    def success(cls, **payload: Any) -> Reply:
        return cls(ok=True, **payload)

    @classmethod
    def failure(cls, error: str, code: str | None = None, **payload: Any) -> Reply:
        return cls(ok=False, error=error, code=code, **payload)

    def to_wire(self) -> dict:
        """Dump to a plain dict, serializing nested models by alias."""
        data: dict[str, Any] = {"ok": self.ok}
        if self.error is not None:
            data["error"] = self.error
        if self.code is not None:
            data["code"] = self.code
        for key, value in (self.model_extra or {}).items():
            data[key] = _to_wire_value(value)
        return data


def _to_wire_value(value: Any) -> Any:
    if isinstance(value, BaseVeyrunModel):
        return value.to_wire()
    if isinstance(value, list):
        return [_to_wire_value(item) for item in value]
    if isinstance(value, dict):
        return {key: _to_wire_value(item) for key, item in value.items()}
    return value
