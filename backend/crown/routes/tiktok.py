from __future__ import annotations
from fastapi import APIRouter, Depends, Query
from crown.auth_deps import CurrentUser, get_current_user
from crown.errors import NotFound
from crown.schemas.submission import VideoOption
from crown.schemas.tiktok import ConnectionState, ConnectRequest, OAuthFlowPublic, SetPrimaryRequest
from crown.services.backend_client import BackendClient, get_backend_client
from crown.services.join_flow import tag_videos
from crown.services.oauth_flow import TIKTOK_LOGOUT_URL, FlowRegistry, PendingFlow, PopupOAuthFlow, get_flow_registry
from crown.services.state_store import ScopedState, StateStore, get_state_store
from crown.services.tiktok_connection import ConnectionRegistry, TikTokConnectionManager, get_connection_registry

router = APIRouter(prefix="/tiktok", tags=["tiktok"])


def _manager(user: CurrentUser, registry: ConnectionRegistry) -> TikTokConnectionManager:
    return registry.get(str(user.id)).bind(user.token)


@router.get("/connection", response_model=ConnectionState)
async def connection_state(
    force: bool = Query(default=False),
    user: CurrentUser = Depends(get_current_user),
    registry: ConnectionRegistry = Depends(get_connection_registry),
):
    return await _manager(user, registry).refresh_connection(force=force)


def _flow_public(flow: PendingFlow | None) -> OAuthFlowPublic:
    if flow is None:
        return OAuthFlowPublic(flow_id="", outcome="blocked")
    kind = "logout" if flow.url == TIKTOK_LOGOUT_URL else "auth"
    return OAuthFlowPublic(flow_id=flow.id, url=flow.url, kind=kind, outcome=flow.outcome)


@router.post("/connect", response_model=OAuthFlowPublic, status_code=202)
async def connect(
    payload: ConnectRequest,
    user: CurrentUser = Depends(get_current_user),
    registry: ConnectionRegistry = Depends(get_connection_registry),
    flows: FlowRegistry = Depends(get_flow_registry),
    state: StateStore = Depends(get_state_store),
):
    scoped = ScopedState(state, f"user:{user.id}")
    win = await _manager(user, registry).start_popup_connect(
        flows.opener_for(str(user.id)),
        lambda opener: PopupOAuthFlow(opener, state=scoped),
        switch_account=payload.force_account_selection,
        emphasize_video_permissions=payload.emphasize_video_permissions,
    )
    return _flow_public(win)


@router.post("/connect/video-permissions", response_model=OAuthFlowPublic, status_code=202)
async def reconnect_with_video_permissions(
    user: CurrentUser = Depends(get_current_user),
    registry: ConnectionRegistry = Depends(get_connection_registry),
    flows: FlowRegistry = Depends(get_flow_registry),
):
    win = await _manager(user, registry).start_connect(flows.opener_for(str(user.id)))
    return _flow_public(win)


@router.get("/oauth/flows/current", response_model=OAuthFlowPublic)
async def current_flow(
    user: CurrentUser = Depends(get_current_user),
    flows: FlowRegistry = Depends(get_flow_registry),
):
    flow = flows.latest_for(str(user.id))
    if not flow:
        raise NotFound("OAuth flow not found")
    return _flow_public(flow)


@router.get("/oauth/flows/{flow_id}", response_model=OAuthFlowPublic)
async def flow_status(
    flow_id: str,
    user: CurrentUser = Depends(get_current_user),
    flows: FlowRegistry = Depends(get_flow_registry),
):
    flow = flows.get(flow_id, str(user.id))
    if not flow:
        raise NotFound("OAuth flow not found")
    return _flow_public(flow)


@router.post("/oauth/flows/{flow_id}/complete", response_model=OAuthFlowPublic)
async def complete_flow(
    flow_id: str,
    user: CurrentUser = Depends(get_current_user),
    flows: FlowRegistry = Depends(get_flow_registry),
):
    if not flows.get(flow_id, str(user.id)):
        raise NotFound("OAuth flow not found")
    flow = flows.complete(flow_id)
    return _flow_public(flow)


@router.post("/accounts/primary", response_model=ConnectionState)
async def set_primary(
    payload: SetPrimaryRequest,
    user: CurrentUser = Depends(get_current_user),
    registry: ConnectionRegistry = Depends(get_connection_registry),
):
    return await _manager(user, registry).set_primary_account(payload.account_id)


@router.delete("/accounts/{account_id}", response_model=ConnectionState)
async def delete_account(
    account_id: str,
    user: CurrentUser = Depends(get_current_user),
    registry: ConnectionRegistry = Depends(get_connection_registry),
):
    return await _manager(user, registry).delete_account(account_id)


@router.post("/disconnect", response_model=ConnectionState)
async def disconnect(
    user: CurrentUser = Depends(get_current_user),
    registry: ConnectionRegistry = Depends(get_connection_registry),
):
    return await _manager(user, registry).disconnect_all_accounts()


@router.get("/videos", response_model=list[VideoOption])
async def videos(
    user: CurrentUser = Depends(get_current_user),
    backend: BackendClient = Depends(get_backend_client),
):
    return tag_videos(await backend.list_videos(user.token))
