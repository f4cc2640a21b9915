from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field

from movienight.models.invite_code import InviteCodeStatus
from movienight.schemas.session import SessionResponse, VoterResponse
from movienight.services.invite_codes import invite_url


class JoinRequest(BaseModel):
    fingerprint: Optional[str] = Field(default=None, max_length=128)


class JoinResponse(BaseModel):
    token: str
    already_joined: bool
    session: SessionResponse
    voter: VoterResponse


class InviteCreate(BaseModel):
    label: str = Field(min_length=1, max_length=100)
    max_uses: int = Field(default=1, ge=1, le=100)


class InviteLabelUpdate(BaseModel):
    label: str = Field(min_length=1, max_length=100)


class RootCodesCreate(BaseModel):
    count: int = Field(default=1, ge=1, le=20)
    label: Optional[str] = Field(default=None, max_length=100)
    max_uses: int = Field(default=1, ge=1, le=100)


class InviteLinkResponse(BaseModel):
    code: str
    url: str
    status: InviteCodeStatus
    label: Optional[str]
    max_uses: int
    use_count: int
    created_at: datetime

    @classmethod
    def from_code(cls, invite) -> "InviteLinkResponse":
        return cls(
            code=invite.code,
            url=invite_url(invite.code),
            status=invite.status,
            label=invite.label,
            max_uses=invite.max_uses,
            use_count=invite.use_count,
            created_at=invite.created_at,
        )


class SlotsUpdate(BaseModel):
    invite_slots: int = Field(ge=0)


class DeletedCodeResponse(BaseModel):
    code: str
    removed_voter_ids: list[str]


class CodeLeafResponse(BaseModel):
    code: str
    status: InviteCodeStatus
    label: Optional[str]
    use_count: int
    max_uses: int
    used_by_voter_id: Optional[str]

    model_config = {"from_attributes": True}


class VoterNodeResponse(BaseModel):
    id: str
    display_name: str
    invite_depth: int
    vote_count: int
    invite_slots_remaining: int
    invites_created: int
    fingerprint: Optional[str]
    joined_at: datetime
    codes: list[CodeLeafResponse] = []
    children: list["VoterNodeResponse"] = []

    model_config = {"from_attributes": True}


class RootCodeNodeResponse(BaseModel):
    code: CodeLeafResponse
    voters: list[VoterNodeResponse] = []

    model_config = {"from_attributes": True}


class InviteTreeResponse(BaseModel):
    session: SessionResponse
    roots: list[RootCodeNodeResponse]
    detached: list[VoterNodeResponse]
    voter_count: int

    model_config = {"from_attributes": True}
