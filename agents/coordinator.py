"""
Session Coordinator
Lead Enrichment Engine

Fans a batch of rows out to the AgentOrchestrator with bounded
concurrency and turns the run into an ordered stream of typed events:

    session -> processing* / agent_progress* / result* -> complete | cancelled

Cancellation is cooperative: the session's cancel flag is polled before
each row dispatch and before each agent turn. In-flight turns finish;
no new ones start.

Usage:
    lead-enrich enrich --rows rows.json --fields fields.json
    lead-enrich score --payload lead.json
    lead-enrich draft --payload lead.json
    lead-enrich fields "size, funding and who runs the company"
"""

import asyncio
import itertools
import json
from collections.abc import AsyncIterator
from datetime import timedelta
from pathlib import Path

import click
from pydantic import ValidationError

from agents.enrichment.field_generator import FieldGenerator
from agents.llm import ChatCompletionBackend
from agents.orchestrator import AgentOrchestrator
from agents.outreach.email_drafter import EmailDrafter
from agents.scoring.lead_scorer import LeadScorer
from contracts.errors import EnrichmentError, MissingCredentials, RequestValidationError
from middleware.secrets import SecretsManager, get_secrets_manager
from models.events import (
    AgentProgressEvent,
    CancelledEvent,
    CompleteEvent,
    ErrorEvent,
    ProcessingEvent,
    ResultEvent,
    SessionEvent,
    StreamEvent,
    format_sse,
)
from models.ontology import EnrichmentRequest, RowEnrichmentResult, RowStatus
from skills.common.SKILL import (
    ROWS_PROCESSED_TOTAL,
    AsyncHTTPClient,
    Config,
    StructuredLogger,
    set_log_level,
)
from state.machine import SessionPhase, SessionRegistry, get_session_registry

DEFAULT_MAX_CONCURRENCY = 3
BATCH_FAILED = "BATCH_FAILED"


class SessionCoordinator:
    """
    Runs enrichment batches as event streams.

    Pass an orchestrator to bypass credential lookup (tests, embedding);
    otherwise one is built per batch from config/agents.yaml and the
    SecretsManager, sharing this coordinator's HTTP client.
    """

    def __init__(
        self,
        orchestrator: AgentOrchestrator | None = None,
        registry: SessionRegistry | None = None,
        secrets: SecretsManager | None = None,
        config: Config | None = None,
        http: AsyncHTTPClient | None = None,
    ):
        self.orchestrator = orchestrator
        self.registry = registry if registry is not None else get_session_registry()
        self.secrets = secrets or get_secrets_manager()
        self.config = config or Config()
        self.http = http or AsyncHTTPClient()
        self.log = StructuredLogger("coordinator")

    # -------------------------------------------------------------------------
    # Wiring
    # -------------------------------------------------------------------------

    def llm_backend(self) -> ChatCompletionBackend:
        """Backend from config; raises MissingCredentials without OPENAI_API_KEY."""
        keys = self.secrets.require(("OPENAI_API_KEY",))
        return ChatCompletionBackend(
            keys["OPENAI_API_KEY"],
            base_url=self.config.get("agents.llm.base_url", "https://api.openai.com/v1"),
            model=self.config.get("agents.llm.model", "gpt-4o"),
            http=self.http,
            timeout=int(self.config.get("agents.llm.timeout", 60)),
        )

    def build_orchestrator(self) -> AgentOrchestrator:
        keys = self.secrets.require()
        scraper = self.config.get("agents.scraper", {})
        limits = self.config.get("agents.limits", {})

        return AgentOrchestrator(
            self.llm_backend(),
            keys["FIRECRAWL_API_KEY"],
            http=self.http,
            firecrawl_base_url=scraper.get("base_url", "https://api.firecrawl.dev"),
            agent_settings={k: int(v) for k, v in limits.items()},
            scraper_settings={
                k: int(scraper[k]) for k in ("max_age_ms", "wait_for_ms") if k in scraper
            },
        )

    async def close(self):
        await self.http.close()

    # -------------------------------------------------------------------------
    # Public API
    # -------------------------------------------------------------------------

    def cancel(self, session_id: str) -> bool:
        """Request cancellation; False when the session is unknown or finished."""
        cancelled = self.registry.cancel(session_id)
        self.log.info("Cancel requested", session=session_id, found=cancelled)
        return cancelled

    def _concurrency(self, request: EnrichmentRequest) -> int:
        if request.max_concurrency:
            return request.max_concurrency
        return int(self.config.get("agents.coordinator.max_concurrency", DEFAULT_MAX_CONCURRENCY))

    async def stream(self, request: EnrichmentRequest | dict) -> AsyncIterator[StreamEvent]:
        """
        Enrich a batch, yielding events as they happen.

        Invalid requests and missing credentials yield a single error event
        and no session. Every dispatched row yields exactly one result.
        """
        try:
            if not isinstance(request, EnrichmentRequest):
                request = EnrichmentRequest.model_validate(request)
        except ValidationError as e:
            error = RequestValidationError(
                "Invalid enrichment request",
                details={"errors": e.errors(include_url=False, include_context=False)},
            )
            yield ErrorEvent(**error.to_dict())
            return

        try:
            orchestrator = self.orchestrator or self.build_orchestrator()
        except MissingCredentials as e:
            self.log.error("Missing API keys", missing=",".join(e.missing))
            yield ErrorEvent(**e.to_dict())
            return

        max_age = self.config.get("agents.coordinator.session_max_age_minutes", 60)
        self.registry.sweep(timedelta(minutes=int(max_age)))

        total = len(request.rows)
        session = self.registry.create(total_rows=total)
        log = self.log.bind(session.session_id)
        sequence = itertools.count(1)

        def stamp(event: StreamEvent) -> StreamEvent:
            return event.model_copy(
                update={"session_id": session.session_id, "sequence": next(sequence)}
            )

        queue: asyncio.Queue[StreamEvent | None] = asyncio.Queue()
        semaphore = asyncio.Semaphore(self._concurrency(request))
        tasks: list[asyncio.Task] = []
        stats = {status.value: 0 for status in RowStatus if status != RowStatus.PENDING}

        def progress(row_index: int):
            def emit(message: str, kind: str = "info"):
                queue.put_nowait(
                    AgentProgressEvent(message=message, message_type=kind, row_index=row_index)
                )
            return emit

        async def run_row(row_index: int, row: dict):
            try:
                result = await orchestrator.enrich_row(
                    row_index,
                    row,
                    request.fields,
                    request.email_column,
                    cancel_probe=session.is_cancelled,
                    emit=progress(row_index),
                )
            except Exception as e:
                log.error("Row failed unexpectedly", row_index=row_index, error=str(e))
                email = row.get(request.email_column)
                result = RowEnrichmentResult(
                    row_index=row_index, email=str(email) if email else None
                ).finalize(RowStatus.ERROR, str(e))
            finally:
                semaphore.release()

            session.record_result(row_index)
            stats[result.status.value] += 1
            ROWS_PROCESSED_TOTAL.labels(status=result.status.value).inc()
            queue.put_nowait(ResultEvent(result=result))

        async def dispatch():
            try:
                for row_index, row in enumerate(request.rows):
                    if session.is_cancelled():
                        break
                    await semaphore.acquire()
                    if session.is_cancelled():
                        semaphore.release()
                        break

                    session.record_dispatch(row_index)
                    queue.put_nowait(ProcessingEvent(row_index=row_index, total_rows=total))
                    tasks.append(asyncio.create_task(run_row(row_index, row)))

                if tasks:
                    await asyncio.gather(*tasks)
            finally:
                queue.put_nowait(None)

        session.transition_to(SessionPhase.PROCESSING)
        log.info("Batch started", rows=total, fields=len(request.fields))
        yield stamp(SessionEvent(total_rows=total))

        dispatcher = asyncio.create_task(dispatch())
        try:
            while (event := await queue.get()) is not None:
                yield stamp(event)
            await dispatcher

            if session.is_cancelled():
                session.transition_to(SessionPhase.CANCELLED)
                log.info(
                    "Batch cancelled",
                    dispatched=len(session.dispatched_rows),
                    undispatched=len(session.undispatched_rows()),
                )
                yield stamp(CancelledEvent(
                    dispatched_rows=list(session.dispatched_rows),
                    undispatched_rows=session.undispatched_rows(),
                ))
            else:
                session.transition_to(SessionPhase.COMPLETED)
                log.info("Batch complete", **stats)
                yield stamp(CompleteEvent(stats={"total": total, **stats}))
        except Exception as e:
            session.transition_to(SessionPhase.FAILED)
            log.error("Batch failed", error=str(e))
            yield stamp(ErrorEvent(error=str(e), code=BATCH_FAILED))
        finally:
            for task in [dispatcher, *tasks]:
                if not task.done():
                    task.cancel()
            self.registry.remove(session.session_id)
            log.debug("Session closed", **session.get_summary())


# =============================================================================
# CLI
# =============================================================================

def _read_json(path: str):
    return json.loads(Path(path).read_text(encoding="utf-8"))


def _fail(error: Exception):
    click.echo(click.style(f"[FAIL] {error}", fg="red"), err=True)
    raise SystemExit(1)


@click.group()
@click.option(
    "--log-level",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"], case_sensitive=False),
    default="INFO",
    help="Logging level",
)
@click.option("--log-dir", type=click.Path(file_okay=False), default=None,
              help="Also write rotating JSON batch logs to this directory")
def main(log_level, log_dir):
    """
    Lead Enrichment Engine

    Enrich contact rows from their company websites, score leads and
    draft outreach emails.
    """
    set_log_level(log_level)
    if log_dir:
        StructuredLogger("coordinator").setup_file_logging(log_dir=log_dir)


@main.command()
@click.option("--rows", "rows_path", required=True, type=click.Path(exists=True),
              help="JSON array of row objects")
@click.option("--fields", "fields_path", required=True, type=click.Path(exists=True),
              help="JSON array of field definitions")
@click.option("--email-column", default="email", help="Row key holding the email address")
@click.option("--concurrency", type=click.IntRange(1, 20), default=None,
              help="Rows processed in parallel")
def enrich(rows_path, fields_path, email_column, concurrency):
    """Enrich rows and print the event stream as server-sent events."""
    request = {
        "rows": _read_json(rows_path),
        "fields": _read_json(fields_path),
        "emailColumn": email_column,
        "maxConcurrency": concurrency,
    }

    async def run() -> bool:
        coordinator = SessionCoordinator()
        ok = True
        try:
            async for event in coordinator.stream(request):
                click.echo(format_sse(event), nl=False)
                ok = ok and event.type != "error"
        finally:
            await coordinator.close()
        return ok

    if not asyncio.run(run()):
        raise SystemExit(1)


@main.command()
@click.option("--payload", required=True, type=click.Path(exists=True),
              help="JSON with enrichedData, email and optional companyDomain")
def score(payload):
    """Score an enriched lead."""

    async def run():
        coordinator = SessionCoordinator()
        try:
            return await LeadScorer(coordinator.llm_backend()).score(_read_json(payload))
        finally:
            await coordinator.close()

    try:
        result = asyncio.run(run())
    except EnrichmentError as e:
        _fail(e)
    click.echo(json.dumps(result.to_wire(), indent=2))


@main.command()
@click.option("--payload", required=True, type=click.Path(exists=True),
              help="JSON with enrichedData, leadScore, email and optional sender/tone")
def draft(payload):
    """Draft a personalized outreach email."""

    async def run():
        coordinator = SessionCoordinator()
        try:
            return await EmailDrafter(coordinator.llm_backend()).draft(_read_json(payload))
        finally:
            await coordinator.close()

    try:
        result = asyncio.run(run())
    except EnrichmentError as e:
        _fail(e)
    click.echo(json.dumps(result.to_wire(), indent=2))


@main.command()
@click.argument("prompt")
def fields(prompt):
    """Turn a plain-language data request into field definitions."""

    async def run():
        coordinator = SessionCoordinator()
        try:
            return await FieldGenerator(coordinator.llm_backend()).generate(prompt)
        finally:
            await coordinator.close()

    try:
        generated = asyncio.run(run())
    except EnrichmentError as e:
        _fail(e)
    click.echo(json.dumps([f.to_wire() for f in generated], indent=2))


if __name__ == "__main__":
    main()
