import asyncio
import logging
from typing import Any, Dict, List, Optional

from fastapi import FastAPI, WebSocket, WebSocketDisconnect, Query, HTTPException
from fastapi.middleware.cors import CORSMiddleware

from .config import settings
from .database import get_db, init_db
from .fetch import Direction
from .granularity import GRANULARITIES, get_granularity, pick_granularity
from .schemas import Point, Range, TimeRangeRequest, VisibleRange
from .sources import get_bucketed_points, make_source
from .window_manager import EDGES, WindowManager

logging.basicConfig(
    level="DEBUG" if settings.DEBUG else settings.LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

# Initialize the database
init_db()

app = FastAPI(title=settings.APP_NAME, version=settings.APP_VERSION, debug=settings.DEBUG)

# Configure CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

def dump_points(points: List[Point]) -> List[Dict[str, Any]]:
    return [p.model_dump(exclude_none=True) for p in points]

@app.get("/")
async def root():
    """Root endpoint to check if the API is running."""
    return {"message": "Trend Window API is running"}

@app.get("/data")
async def get_data(
    start: int,
    end: int,
    granularity: Optional[str] = Query(None, description="e.g. 'hour','day','week','month','year'"),
    subject: str = "default",
):
    """
    Fetch points from start to end (epoch seconds) out of the local store.
    If no granularity is provided, one is selected based on the time span.
    """
    if start > end:
        raise HTTPException(status_code=400, detail="start must not be after end")

    # If no granularity provided, pick one based on the time span
    if not granularity:
        granularity = pick_granularity(end - start)

    if granularity not in GRANULARITIES:
        raise HTTPException(status_code=400, detail=f"Invalid granularity. Valid options are: {', '.join(GRANULARITIES.keys())}")

    gran = GRANULARITIES[granularity]

    with get_db() as conn:
        result = get_bucketed_points(conn, subject, start, end, gran)
        return {"data": dump_points(result), "granularity": granularity}

@app.get("/stats")
async def get_stats():
    """
    Get basic statistics about the local store.
    """
    with get_db() as conn:
        cursor = conn.cursor()

        cursor.execute("""
            SELECT
                COUNT(*) as count,
                COUNT(DISTINCT subject) as subjects,
                MIN(time) as min_time,
                MAX(time) as max_time,
                MIN(value) as min_value,
                MAX(value) as max_value
            FROM trend_points
        """)

        result = cursor.fetchone()

        if result and result["count"]:
            return {
                "count": result["count"],
                "subjects": result["subjects"],
                "min_time": result["min_time"],
                "max_time": result["max_time"],
                "min_value": result["min_value"],
                "max_value": result["max_value"],
            }

        return {"count": 0}

def series_messages(manager: WindowManager, points: List[Point], chunk_size: int):
    """Split a series push into chunks followed by an end marker."""
    rng = manager.range
    meta = {
        "granularity": rng.granularity if rng else None,
        "range": rng.model_dump() if rng else None,
    }
    for i in range(0, len(points), chunk_size):
        yield {"type": "series", **meta, "offset": i, "points": dump_points(points[i:i + chunk_size])}
    yield {"type": "series_end", **meta, "count": len(points)}

async def _sender(websocket: WebSocket, outbox: "asyncio.Queue[Dict[str, Any]]"):
    while True:
        message = await outbox.get()
        await websocket.send_json(message)

@app.websocket("/ws")
async def websocket_endpoint(websocket: WebSocket):
    """
    WebSocket endpoint driving one trend window per connection.
    The client reports visible ranges and clicks; the server pushes the
    merged series whenever it changes.
    """
    await websocket.accept()

    conn_id = id(websocket)
    outbox: "asyncio.Queue[Dict[str, Any]]" = asyncio.Queue()
    sender = asyncio.create_task(_sender(websocket, outbox))
    reloads = set()

    def push_series(points: List[Point]):
        for message in series_messages(manager, points, settings.WS_CHUNK_SIZE):
            outbox.put_nowait(message)

    def push_error(direction: Direction, exc: BaseException):
        outbox.put_nowait({"type": "error", "direction": direction.value, "error": str(exc) or repr(exc)})

    def push_point(point: Point):
        outbox.put_nowait({"type": "point", "point": point.model_dump(exclude_none=True)})

    source = make_source()
    manager = WindowManager(
        source.fetch_series,
        on_series=push_series,
        on_error=push_error,
        on_point_click=push_point,
    )
    logger.info("WebSocket connected: %s", conn_id)

    try:
        while True:
            # Wait for a request from the client
            data = await websocket.receive_json()

            # Extract the action
            action = data.get("action", "set_range")

            try:
                if action == "set_range":
                    req = TimeRangeRequest(**{k: v for k, v in data.items() if k in TimeRangeRequest.model_fields})
                    granularity = req.granularity or pick_granularity(req.end - req.start)
                    get_granularity(granularity)
                    Range(start=req.start, end=req.end, granularity=granularity)
                    manager.subject = {
                        "subject": req.subject or "default",
                        "birthData": data.get("birthData", {}),
                    }
                    task = asyncio.create_task(manager.set_range(req.start, req.end, granularity))
                    reloads.add(task)
                    task.add_done_callback(reloads.discard)

                elif action == "visible_range":
                    manager.on_visible_range_change(VisibleRange(
                        from_index=data["from_index"],
                        to_index=data["to_index"],
                        data_length=data["data_length"],
                    ))

                elif action == "extend":
                    direction = Direction(data.get("direction"))
                    if direction not in EDGES:
                        raise ValueError(f"Invalid direction: {direction.value}")
                    manager.extend(direction, force=bool(data.get("force", False)))

                elif action == "point_click":
                    if manager.on_point_click(data.get("time")) is None:
                        outbox.put_nowait({"type": "error", "error": f"No point at {data.get('time')!r}"})

                else:
                    outbox.put_nowait({"type": "error", "error": f"Unknown action: {action}"})

            except (ValueError, KeyError, TypeError) as e:
                outbox.put_nowait({"type": "error", "error": str(e)})

    except WebSocketDisconnect:
        logger.info("WebSocket disconnected: %s", conn_id)
    except Exception:
        logger.exception("WebSocket error: %s", conn_id)
    finally:
        for task in list(reloads):
            task.cancel()
        await manager.close()
        sender.cancel()
