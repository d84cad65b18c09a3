"""Server-sent event stream of log entries and broadcasts.

GET    /api/stream                      — open a push channel (text/event-stream)
POST   /api/stream                      — broadcast {"type": "broadcast", "data": {...}}
DELETE /api/stream?connectionId=<id>    — close one channel's bookkeeping
GET    /api/stream/connections          — open channels and their metrics
"""

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from fastapi.responses import StreamingResponse

from app.dependencies import client_ip, get_broker, read_json, validate_body
from app.event_stream import DeliveryError, EventBroker, UnknownConnection
from app.log_store import LogMetadata
from app.schemas.stream import BroadcastRequest, BroadcastResponse, CloseResponse, ConnectionOut

router = APIRouter(prefix="/stream", tags=["stream"])


# ── Endpoints ────────────────────────────────────────────────────────────────


@router.get("")
async def open_stream(request: Request, broker: EventBroker = Depends(get_broker)) -> StreamingResponse:
    channel = broker.open(
        endpoint=str(request.url),
        user_agent=request.headers.get("user-agent", "unknown"),
        ip=client_ip(request),
    )
    return StreamingResponse(
        broker.stream(channel, request.is_disconnected),
        media_type="text/event-stream",
        headers={
            "Cache-Control": "no-cache",
            "Connection": "keep-alive",
            "X-Accel-Buffering": "no",
            "X-Connection-Id": channel.id,
        },
    )


@router.post("", response_model=BroadcastResponse)
async def broadcast(request: Request, broker: EventBroker = Depends(get_broker)) -> BroadcastResponse:
    endpoint = str(request.url)
    payload = await read_json(request)
    broker.store.add_log(
        "info",
        "Received SSE broadcast request",
        payload,
        LogMetadata(endpoint=endpoint),
    )

    body = validate_body(BroadcastRequest, payload, "Invalid broadcast request format")
    data = body.data.model_dump(exclude_none=True)

    if body.target_connection:
        try:
            broker.send(body.target_connection, data, event_type="broadcast")
        except UnknownConnection as exc:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc))
        except DeliveryError as exc:
            raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc))
        return BroadcastResponse(
            success=True,
            message=f"Sent to connection {body.target_connection}",
            broadcast_count=1,
        )

    count = broker.broadcast(data, endpoint=endpoint)
    return BroadcastResponse(
        success=True,
        message=f"Broadcasted to {count} connections",
        broadcast_count=count,
    )


@router.delete("", response_model=CloseResponse)
async def close_connection(
    connection_id: str | None = Query(None, alias="connectionId"),
    broker: EventBroker = Depends(get_broker),
) -> CloseResponse:
    if not connection_id:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Connection ID required")

    closed = broker.close(connection_id, reason="close requested")
    message = f"Connection {connection_id} closed" if closed else f"Connection {connection_id} was not open"
    return CloseResponse(success=True, message=message)


@router.get("/connections", response_model=list[ConnectionOut])
async def list_connections(broker: EventBroker = Depends(get_broker)) -> list[ConnectionOut]:
    out: list[ConnectionOut] = []
    for connection_id in broker.active_ids:
        channel = broker.get(connection_id)
        if channel is None:
            continue
        out.append(
            ConnectionOut(
                connection_id=connection_id,
                endpoint=channel.endpoint,
                metrics=broker.store.connections.get(connection_id),
            )
        )
    return out
