"""Shape checks applied to every channel request before dispatch."""

from __future__ import annotations

from notify_dispatch.core.errors import ConfigurationError
from notify_dispatch.types import Channel, ChannelSendRequest

__all__ = ["NotificationValidator"]


class NotificationValidator:
    """Validate channel requests; violations raise ConfigurationError."""

    def validate(self, request: ChannelSendRequest) -> None:
        content = request.content
        if content.template is None and content.literal is None:
            msg = "Either a template reference or literal content must be provided"
            raise ConfigurationError(msg)
        if not content.is_well_formed:
            msg = "Template reference and literal content are mutually exclusive"
            raise ConfigurationError(msg)
        if content.template is not None and not (
            content.template.template_id or content.template.template_code
        ):
            msg = "Template reference requires a template id or template code"
            raise ConfigurationError(msg)

        if not request.recipient.has_identifier:
            msg = "Recipient must have at least one identifier (user id, email, or phone)"
            raise ConfigurationError(msg)

        self._validate_channel_requirements(request)

    @staticmethod
    def _validate_channel_requirements(request: ChannelSendRequest) -> None:
        recipient = request.recipient
        literal = request.content.literal

        match request.channel:
            case Channel.EMAIL:
                if not recipient.email and not recipient.user_id:
                    msg = "Email channel requires an email address or user id"
                    raise ConfigurationError(msg)
                if literal is not None and not literal.subject:
                    msg = "Email requires a subject"
                    raise ConfigurationError(msg)
            case Channel.SMS | Channel.CHAT:
                if not recipient.phone and not recipient.user_id:
                    msg = f"{request.channel.value} channel requires a phone number or user id"
                    raise ConfigurationError(msg)
            case Channel.PUSH | Channel.IN_APP:
                if not recipient.user_id:
                    msg = f"{request.channel.value} channel requires a user id"
                    raise ConfigurationError(msg)
