"""Stagebot review service — builds review prompts and parses model replies."""

import collections
import logging

from fastapi import FastAPI, HTTPException

from stagebot.config import ReviewSettings
from stagebot.diff_parser import parse_diff
from stagebot.models.api import ParseRequest, PromptRequest, PromptResponse
from stagebot.models.review import ReviewReport
from stagebot.review import ReviewPipeline

settings = ReviewSettings()

# In-memory ring buffer for debug logs
_log_buffer: collections.deque = collections.deque(maxlen=settings.log_buffer_size)


class _BufferHandler(logging.Handler):
    def emit(self, record: logging.LogRecord) -> None:
        _log_buffer.append(self.format(record))


logging.basicConfig(level=getattr(logging, settings.log_level, logging.INFO))
_bh = _BufferHandler()
_bh.setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s"))
logging.getLogger().addHandler(_bh)

log = logging.getLogger(__name__)

app = FastAPI(title="Stagebot", description="Staged-change review pipeline")

pipeline = ReviewPipeline(settings)


@app.get("/health")
async def health() -> dict[str, str]:
    return {"status": "ok", "service": "stagebot"}


@app.get("/debug/logs")
async def debug_logs() -> dict[str, list]:
    return {"logs": list(_log_buffer)}


@app.post("/review/prompt")
async def review_prompt(body: PromptRequest) -> PromptResponse:
    """Decompose the diff and build the review prompt for the model."""
    prepared = pipeline.prepare(
        body.diff,
        sources=body.sources,
        checks=body.checks,
        learned_patterns=body.learned_patterns,
        additional_context=body.additional_context,
    )
    if not prepared.patches:
        raise HTTPException(status_code=400, detail="No reviewable files in diff")

    log.info("Built %s prompt for %d file(s)", prepared.prompt.style, len(prepared.patches))
    return PromptResponse(
        system=prepared.prompt.system,
        user=prepared.prompt.user,
        style=prepared.prompt.style,
        estimated_tokens=prepared.prompt.estimated_tokens,
        files=[p.file_path for p in prepared.patches],
    )


@app.post("/review/parse")
async def review_parse(body: ParseRequest) -> ReviewReport:
    """Parse the model's reply against the reviewed diff."""
    patches = parse_diff(body.diff)
    if not patches:
        raise HTTPException(status_code=400, detail="No reviewable files in diff")
    return pipeline.finish(body.reply, patches)
