import logging
import os

from fastapi import FastAPI

from api import state
from api.routers import events, ops, schedule, tasks

# Logging configuration
logging.basicConfig(
    level=os.getenv("PLANBOOK_LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s [%(levelname)s] %(message)s",
)
logger = logging.getLogger(__name__)

app = FastAPI(title="Planbook")

app.include_router(ops.router)
app.include_router(events.router)
app.include_router(tasks.router)
app.include_router(schedule.router)


@app.on_event("startup")
async def startup() -> None:
    state.load()
    logger.info(
        f"Loaded {len(state.events)} event(s) and {len(state.tasks)} task(s) "
        f"(persistence: {'file' if state.snapshot_store else 'memory'})"
    )


@app.on_event("shutdown")
async def shutdown() -> None:
    state.persist()
    logger.info("State persisted on shutdown")


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=int(os.getenv("PORT", "8000")))
