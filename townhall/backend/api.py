"""FastAPI endpoints for founding towns and driving membership, invitations and treasury."""

from __future__ import annotations

from typing import Any

from fastapi import Depends, FastAPI, HTTPException, Query, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from .codec import serialize
from .config import load_settings
from .errors import (
    AlreadyInvitedError,
    AlreadyMemberError,
    CapacityExceededError,
    InsufficientRoleError,
    InvalidRoleError,
    NoSuchInvitationError,
    NotAMemberError,
    RegionOverlapError,
    TownError,
    TownExistsError,
    UnknownTownError,
)
from .host import LocalHostContext
from .invitation import Invitation
from .models import PlayerId, Position, Region, TownOption
from .registry import TownRegistry
from .store import create_store
from .town import Town

ERROR_STATUS: dict[type[TownError], int] = {
    UnknownTownError: 404,
    NotAMemberError: 404,
    NoSuchInvitationError: 404,
    InsufficientRoleError: 403,
    AlreadyMemberError: 409,
    AlreadyInvitedError: 409,
    CapacityExceededError: 409,
    TownExistsError: 409,
    RegionOverlapError: 409,
    InvalidRoleError: 422,
}


class Coordinates(BaseModel):
    x: float
    y: float
    z: float


class OptionModel(BaseModel):
    pvp: bool = False
    fire_spread: bool = False
    mob_spawning: bool = True
    public_spawn: bool = False


class FoundTownRequest(BaseModel):
    name: str = Field(min_length=1, max_length=64)
    leader: str = Field(min_length=1)
    world: str = Field(min_length=1)
    start: Coordinates
    end: Coordinates
    spawn: Coordinates | None = None
    option: OptionModel = Field(default_factory=OptionModel)


class TownResponse(BaseModel):
    town: dict[str, Any]


class InviteRequest(BaseModel):
    inviter: str = Field(min_length=1)
    invitee: str = Field(min_length=1)


class InvitationResponse(BaseModel):
    invitee: str
    town: str
    issued_at: str
    status: str


class RoleRequest(BaseModel):
    role: str = Field(min_length=1)


class AmountRequest(BaseModel):
    amount: int = Field(ge=0)


class TreasuryResponse(BaseModel):
    balance: int


class CapacityResponse(BaseModel):
    capacity: int


class RemovalResponse(BaseModel):
    removed: bool


def _player(raw: str) -> PlayerId:
    try:
        return PlayerId(raw)
    except ValueError as exc:
        raise HTTPException(status_code=422, detail=str(exc)) from exc


def _position(world: str, coordinates: Coordinates) -> Position:
    return Position(world=world, x=coordinates.x, y=coordinates.y, z=coordinates.z)


def _invitation_response(invitation: Invitation) -> InvitationResponse:
    return InvitationResponse(
        invitee=invitation.invitee.value,
        town=invitation.town,
        issued_at=invitation.issued_at.isoformat(),
        status=invitation.status.value,
    )


def _default_registry() -> TownRegistry:
    settings = load_settings()
    registry = TownRegistry(
        host=LocalHostContext(),
        store=create_store(settings.database_url, settings.data_dir),
        rules=settings.rules(),
    )
    registry.load_all()
    return registry


def create_app(registry: TownRegistry | None = None) -> FastAPI:
    app = FastAPI(title="Townhall API", version="0.1.0")
    town_registry = registry if registry is not None else _default_registry()
    app.state.registry = town_registry

    @app.exception_handler(TownError)
    async def town_error_handler(request: Request, exc: TownError) -> JSONResponse:
        status_code = next((code for kind, code in ERROR_STATUS.items() if isinstance(exc, kind)), 400)
        return JSONResponse(status_code=status_code, content={"detail": str(exc), "error": type(exc).__name__})

    def get_registry() -> TownRegistry:
        return town_registry

    def get_town(name: str, local_registry: TownRegistry = Depends(get_registry)) -> Town:
        return local_registry.get(name)

    @app.post("/api/towns", response_model=TownResponse)
    def found_town(payload: FoundTownRequest, local_registry: TownRegistry = Depends(get_registry)) -> TownResponse:
        try:
            region = Region(start=_position(payload.world, payload.start), end=_position(payload.world, payload.end))
        except ValueError as exc:
            raise HTTPException(status_code=422, detail=str(exc)) from exc
        town = local_registry.found_town(
            name=payload.name,
            leader=_player(payload.leader),
            region=region,
            spawn=_position(payload.world, payload.spawn) if payload.spawn is not None else None,
            option=TownOption(**payload.option.model_dump()),
        )
        return TownResponse(town=serialize(town))

    @app.get("/api/towns/{name}", response_model=TownResponse)
    def read_town(town: Town = Depends(get_town)) -> TownResponse:
        return TownResponse(town=serialize(town))

    @app.delete("/api/towns/{name}", response_model=TownResponse)
    def delete_town(
        name: str,
        player: str = Query(min_length=1),
        local_registry: TownRegistry = Depends(get_registry),
    ) -> TownResponse:
        town = local_registry.delete_town(name, initiator=_player(player))
        return TownResponse(town=serialize(town))

    @app.post("/api/towns/{name}/invitations", response_model=InvitationResponse)
    def invite(
        payload: InviteRequest,
        town: Town = Depends(get_town),
        local_registry: TownRegistry = Depends(get_registry),
    ) -> InvitationResponse:
        invitation = town.invite(_player(payload.inviter), _player(payload.invitee))
        local_registry.save(town)
        return _invitation_response(invitation)

    @app.post("/api/towns/{name}/invitations/{invitee}/accept", response_model=InvitationResponse)
    def accept_invitation(
        invitee: str,
        town: Town = Depends(get_town),
        local_registry: TownRegistry = Depends(get_registry),
    ) -> InvitationResponse:
        invitation = town.accept_invitation(_player(invitee))
        local_registry.save(town)
        return _invitation_response(invitation)

    @app.post("/api/towns/{name}/invitations/{invitee}/decline", response_model=InvitationResponse)
    def decline_invitation(
        invitee: str,
        town: Town = Depends(get_town),
        local_registry: TownRegistry = Depends(get_registry),
    ) -> InvitationResponse:
        invitation = town.decline_invitation(_player(invitee))
        local_registry.save(town)
        return _invitation_response(invitation)

    @app.put("/api/towns/{name}/members/{player}/role", response_model=TownResponse)
    def set_role(
        player: str,
        payload: RoleRequest,
        town: Town = Depends(get_town),
        local_registry: TownRegistry = Depends(get_registry),
    ) -> TownResponse:
        target = _player(player)
        if not town.is_member(target):
            raise NotAMemberError(f"{target} is not a member of {town.name}")
        town.set_role(target, payload.role)
        local_registry.save(town)
        return TownResponse(town=serialize(town))

    @app.delete("/api/towns/{name}/members/{player}", response_model=RemovalResponse)
    def remove_member(
        player: str,
        force: bool = Query(default=False),
        town: Town = Depends(get_town),
        local_registry: TownRegistry = Depends(get_registry),
    ) -> RemovalResponse:
        removed = town.remove_member(_player(player), force=force)
        if removed:
            local_registry.save(town)
        return RemovalResponse(removed=removed)

    @app.post("/api/towns/{name}/treasury/deposit", response_model=TreasuryResponse)
    def deposit(
        payload: AmountRequest,
        town: Town = Depends(get_town),
        local_registry: TownRegistry = Depends(get_registry),
    ) -> TreasuryResponse:
        town.deposit(payload.amount)
        local_registry.save(town)
        return TreasuryResponse(balance=town.balance())

    @app.post("/api/towns/{name}/treasury/withdraw", response_model=TreasuryResponse)
    def withdraw(
        payload: AmountRequest,
        town: Town = Depends(get_town),
        local_registry: TownRegistry = Depends(get_registry),
    ) -> TreasuryResponse:
        if not town.withdraw(payload.amount):
            raise HTTPException(status_code=409, detail="Insufficient treasury balance")
        local_registry.save(town)
        return TreasuryResponse(balance=town.balance())

    @app.post("/api/towns/{name}/capacity", response_model=CapacityResponse)
    def increase_capacity(
        town: Town = Depends(get_town),
        local_registry: TownRegistry = Depends(get_registry),
    ) -> CapacityResponse:
        capacity = town.increase_capacity()
        local_registry.save(town)
        return CapacityResponse(capacity=capacity)

    return app


app = create_app()
