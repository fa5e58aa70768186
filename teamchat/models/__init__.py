"""Import all models so SQLModel.metadata picks them up."""

from teamchat.models.channel import (
    Channel,
    ChannelCreate,
    ChannelRead,
    ChannelType,
    DirectChannelRead,
    direct_pair_key,
)
from teamchat.models.membership import AddMembersRequest, MemberRead, MemberRole, Membership
from teamchat.models.message import (
    Message,
    MessageCreate,
    MessagePage,
    MessagePreview,
    MessageRead,
    MessageType,
    SystemAction,
)
from teamchat.models.tenant import Tenant
from teamchat.models.user import User, UserBrief, UserRole

__all__ = [
    "AddMembersRequest",
    "Channel",
    "ChannelCreate",
    "ChannelRead",
    "ChannelType",
    "DirectChannelRead",
    "MemberRead",
    "MemberRole",
    "Membership",
    "Message",
    "MessageCreate",
    "MessagePage",
    "MessagePreview",
    "MessageRead",
    "MessageType",
    "SystemAction",
    "Tenant",
    "User",
    "UserBrief",
    "UserRole",
    "direct_pair_key",
]
