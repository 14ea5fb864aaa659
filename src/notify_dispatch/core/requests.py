"""Request file schema for the command-line entry point.

A request file is a YAML mapping whose ``kind`` selects the request shape:
``single``, ``broadcast``, ``multi`` or ``batch``. Models validate the
shape with Pydantic and convert it into the dataclasses the orchestrators
consume.
"""

from __future__ import annotations

from datetime import datetime
from typing import Annotated, Literal, Self

from pydantic import BaseModel, Field, TypeAdapter, model_validator

from notify_dispatch.core.config import ProviderChainConfig
from notify_dispatch.types import (
    BroadcastOptions,
    BroadcastPolicy,
    Channel,
    ChannelSendRequest,
    Content,
    LiteralContent,
    MultiOptions,
    Priority,
    ProviderChain,
    Recipient,
    RenderedContent,
    TemplateRef,
    TimezoneMode,
    TimezoneOptions,
)

__all__ = [
    "BatchRequest",
    "BroadcastRequest",
    "DispatchRequest",
    "MultiRequest",
    "SingleRequest",
    "TemplateModel",
    "parse_request",
    "parse_templates",
]


class RecipientModel(BaseModel):
    user_id: str | None = None
    email: str | None = None
    phone: str | None = None
    user_type: str | None = None
    metadata: dict[str, object] = {}

    def to_domain(self) -> Recipient:
        return Recipient(
            user_id=self.user_id,
            email=self.email,
            phone=self.phone,
            user_type=self.user_type,
            metadata=dict(self.metadata),
        )


class ContentModel(BaseModel):
    """Template reference or literal content; exactly one must be set."""

    template_id: str | None = None
    template_code: str | None = None
    variables: dict[str, object] = {}
    subject: str | None = None
    body: str | None = None
    html_body: str | None = None

    @model_validator(mode="after")
    def validate_exclusive(self) -> Self:
        has_template = bool(self.template_id or self.template_code)
        has_literal = self.body is not None
        if has_template == has_literal:
            msg = "Provide either template_id/template_code or a literal body, not both"
            raise ValueError(msg)
        return self

    def to_domain(self) -> Content:
        if self.template_id or self.template_code:
            return Content(
                template=TemplateRef(
                    template_id=self.template_id,
                    template_code=self.template_code,
                    variables=dict(self.variables),
                )
            )
        return Content(
            literal=LiteralContent(
                body=self.body or "",
                subject=self.subject,
                html_body=self.html_body,
            )
        )


def _chains(models: dict[Channel, ProviderChainConfig]) -> dict[Channel, ProviderChain]:
    return {channel: model.to_chain() for channel, model in models.items()}


class _RequestBase(BaseModel):
    tenant_id: Annotated[int, Field(ge=1, description="Owning tenant")]
    created_by: Annotated[str, Field(min_length=1)] = "cli"
    content: ContentModel
    priority: Priority = Priority.LOW
    scheduled_at: datetime | None = None
    metadata: dict[str, object] = {}


class SingleRequest(_RequestBase):
    kind: Literal["single"]
    channel: Channel
    recipient: RecipientModel
    provider_chain: ProviderChainConfig | None = None

    def to_request(self) -> ChannelSendRequest:
        return ChannelSendRequest(
            tenant_id=self.tenant_id,
            channel=self.channel,
            recipient=self.recipient.to_domain(),
            content=self.content.to_domain(),
            scheduled_at=self.scheduled_at,
            priority=self.priority,
            metadata=dict(self.metadata),
        )


class BroadcastRequest(_RequestBase):
    kind: Literal["broadcast"]
    channels: list[Channel]
    recipient: RecipientModel
    policy: BroadcastPolicy = BroadcastPolicy.PARALLEL_ALL
    require_all_success: bool = False
    provider_chains: dict[Channel, ProviderChainConfig] = {}

    def to_options(self) -> BroadcastOptions:
        return BroadcastOptions(
            policy=self.policy,
            require_all_success=self.require_all_success,
            provider_chains=_chains(self.provider_chains),
        )


class TimezoneOptionsModel(BaseModel):
    mode: TimezoneMode = TimezoneMode.USER
    timezone: str | None = None

    def to_domain(self) -> TimezoneOptions:
        return TimezoneOptions(mode=self.mode, timezone=self.timezone)


class MultiRequest(_RequestBase):
    kind: Literal["multi"]
    channels: list[Channel]
    recipients: list[RecipientModel]
    stop_on_first_channel_success: bool = False
    require_all_channels_success: bool = False
    parallel_recipients: bool | None = None
    provider_chains: dict[Channel, ProviderChainConfig] = {}
    timezone_options: TimezoneOptionsModel | None = None

    def to_options(self, *, parallel_default: bool) -> MultiOptions:
        return MultiOptions(
            stop_on_first_channel_success=self.stop_on_first_channel_success,
            require_all_channels_success=self.require_all_channels_success,
            parallel_recipients=(
                parallel_default if self.parallel_recipients is None else self.parallel_recipients
            ),
            provider_chains=_chains(self.provider_chains),
            timezone_options=self.timezone_options.to_domain() if self.timezone_options else None,
        )


class BatchItemModel(BaseModel):
    channel: Channel
    recipient: RecipientModel
    content: ContentModel
    priority: Priority = Priority.LOW
    scheduled_at: datetime | None = None
    metadata: dict[str, object] = {}


class BatchRequest(BaseModel):
    kind: Literal["batch"]
    tenant_id: Annotated[int, Field(ge=1)]
    created_by: Annotated[str, Field(min_length=1)] = "cli"
    expected_total: Annotated[int | None, Field(ge=0)] = None
    chunks: Annotated[list[list[BatchItemModel]], Field(min_length=1)]

    def to_chunks(self) -> list[list[ChannelSendRequest]]:
        return [
            [
                ChannelSendRequest(
                    tenant_id=self.tenant_id,
                    channel=item.channel,
                    recipient=item.recipient.to_domain(),
                    content=item.content.to_domain(),
                    scheduled_at=item.scheduled_at,
                    priority=item.priority,
                    metadata=dict(item.metadata),
                )
                for item in chunk
            ]
            for chunk in self.chunks
        ]


type DispatchRequest = SingleRequest | BroadcastRequest | MultiRequest | BatchRequest

_REQUEST_ADAPTER: TypeAdapter[DispatchRequest] = TypeAdapter(
    Annotated[
        SingleRequest | BroadcastRequest | MultiRequest | BatchRequest,
        Field(discriminator="kind"),
    ]
)


def parse_request(data: object) -> DispatchRequest:
    """Validate raw request data.

    Raises:
        pydantic.ValidationError: If the data does not match any request shape
    """
    return _REQUEST_ADAPTER.validate_python(data)


class TemplateModel(BaseModel):
    """Template body keyed by id or code in a request file's ``templates`` section."""

    body: Annotated[str, Field(min_length=1)]
    subject: str | None = None
    html_body: str | None = None

    def to_domain(self) -> RenderedContent:
        return RenderedContent(body=self.body, subject=self.subject, html_body=self.html_body)


_TEMPLATES_ADAPTER: TypeAdapter[dict[str, TemplateModel]] = TypeAdapter(dict[str, TemplateModel])


def parse_templates(data: object) -> dict[str, RenderedContent]:
    """Validate a ``templates`` section into renderable content.

    Raises:
        pydantic.ValidationError: If a template entry is malformed
    """
    if data is None:
        return {}
    return {key: model.to_domain() for key, model in _TEMPLATES_ADAPTER.validate_python(data).items()}
