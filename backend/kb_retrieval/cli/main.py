"""CLI entrypoint for KB Retrieval."""

from __future__ import annotations

from pathlib import Path
from typing import Any, List, NoReturn, Optional

import orjson
import typer

from kb_retrieval.bench.loadtest import run_load_test
from kb_retrieval.core.errors import RetrievalError, ValidationError
from kb_retrieval.core.logging import configure_logging
from kb_retrieval.core.metrics import metrics_payload
from kb_retrieval.dependencies import build_embedding_generator, build_orchestrator, build_store, get_app_settings
from kb_retrieval.models.dto import LoadTestConfig, RetrievalOptions, validate_model
from kb_retrieval.models.entities import Document
from kb_retrieval.retrieval import (
    QueryRouter,
    RetrievalOrchestrator,
    build_context,
    expand_query,
    generate_citations,
    preprocess_query,
)

app = typer.Typer(name="kbr", help="Knowledge-base retrieval command-line interface")

DEFAULT_SOURCE = "kb"


@app.callback()
def main(
    log_level: Optional[str] = typer.Option(None, "--log-level", help="Override configured log level"),
) -> None:
    try:
        settings = get_app_settings()
    except RetrievalError as exc:
        _fail(exc)
    configure_logging(level=(log_level or settings.log_level).upper(), use_json=settings.log_json)


def _emit(payload: Any) -> None:
    typer.echo(orjson.dumps(payload, option=orjson.OPT_INDENT_2).decode("utf-8"))


def _fail(exc: RetrievalError) -> NoReturn:
    typer.echo(f"Error ({type(exc).__name__}): {exc.message}", err=True)
    raise typer.Exit(code=1)


def load_documents(path: Path) -> list[Document]:
    """Read documents from a JSON array, a ``{"documents": [...]}`` object, or JSON lines."""
    try:
        raw = path.expanduser().read_bytes()
    except OSError as exc:
        raise ValidationError(f"Cannot read documents file {path}: {exc}") from exc
    try:
        if path.suffix == ".jsonl":
            records = [orjson.loads(line) for line in raw.splitlines() if line.strip()]
        else:
            parsed = orjson.loads(raw)
            records = parsed.get("documents", []) if isinstance(parsed, dict) else parsed
    except orjson.JSONDecodeError as exc:
        raise ValidationError(f"Invalid JSON in {path}: {exc}") from exc
    if not isinstance(records, list):
        raise ValidationError(f"{path} must hold a list of documents, got {type(records).__name__}")
    documents: list[Document] = []
    for idx, record in enumerate(records):
        if not isinstance(record, dict) or "id" not in record:
            raise ValidationError(f"Document #{idx} in {path} has no 'id'")
        documents.append(Document.from_dict(record))
    return documents


def _orchestrator(docs: Path, source: str, embeddings: bool) -> RetrievalOrchestrator:
    settings = get_app_settings()
    generator = build_embedding_generator(settings) if embeddings else None
    store = build_store(source, load_documents(docs), generator=generator)
    return build_orchestrator({source: store}, settings)


@app.command()
def query(
    q: str = typer.Argument(..., help="Query text"),
    docs: Path = typer.Option(..., "--docs", help="Documents file (JSON or JSONL)"),
    source: str = typer.Option(DEFAULT_SOURCE, "--source", help="Source name for the loaded documents"),
    k: Optional[int] = typer.Option(None, "--k", help="Number of results to return"),
    threshold: Optional[float] = typer.Option(None, "--threshold", help="Minimum similarity (0-100)"),
    strategy: Optional[str] = typer.Option(None, "--strategy", help="Rerank strategy tag"),
    expand: Optional[bool] = typer.Option(None, "--expand/--no-expand", help="Force query expansion on/off"),
    mode: Optional[str] = typer.Option(None, "--mode", help="Search mode: vector, hybrid or auto"),
    variants: Optional[int] = typer.Option(None, "--variants", help="Synonym variants searched alongside the query"),
    preprocess: Optional[bool] = typer.Option(
        None, "--preprocess/--no-preprocess", help="Clean the query before routing"
    ),
    embeddings: bool = typer.Option(False, "--embeddings", help="Score with embedding cosine similarity"),
    context: bool = typer.Option(False, "--context", help="Include formatted context and citations"),
) -> None:
    """Run a retrieval query over a documents file."""
    try:
        orchestrator = _orchestrator(docs, source, embeddings)
        options = RetrievalOptions.from_settings(
            orchestrator.settings,
            top_k=k,
            threshold=threshold,
            rerank_strategy=strategy,
            use_expansion=expand,
            search_mode=mode.strip().lower() if mode else None,
            query_variants=variants,
            preprocess=preprocess,
        )
        result = orchestrator.retrieve(q, [source], options)
    except RetrievalError as exc:
        _fail(exc)
    payload = result.to_dict()
    if context:
        payload["context"] = build_context(result.results)
        payload["citations"] = generate_citations(result.results)
    _emit(payload)


@app.command()
def similar(
    doc_id: str = typer.Argument(..., help="Id of the document to compare against"),
    docs: Path = typer.Option(..., "--docs", help="Documents file (JSON or JSONL)"),
    source: str = typer.Option(DEFAULT_SOURCE, "--source", help="Source name for the loaded documents"),
    k: Optional[int] = typer.Option(None, "--k", help="Number of similar documents to return"),
    threshold: Optional[float] = typer.Option(None, "--threshold", help="Minimum similarity (0-100)"),
    embeddings: bool = typer.Option(False, "--embeddings", help="Score with embedding cosine similarity"),
) -> None:
    """List documents most similar to a stored document."""
    try:
        orchestrator = _orchestrator(docs, source, embeddings)
        options = RetrievalOptions.from_settings(orchestrator.settings, top_k=k, threshold=threshold)
        results = orchestrator.find_similar(doc_id, [source], options)
    except RetrievalError as exc:
        _fail(exc)
    _emit({"doc_id": doc_id, "results": [item.to_dict() for item in results]})


@app.command()
def route(
    q: str = typer.Argument(..., help="Query text"),
    source: List[str] = typer.Option([DEFAULT_SOURCE], "--source", help="Available source (repeatable)"),
    variants: int = typer.Option(0, "--variants", help="Synonym variants to list"),
    preprocess: bool = typer.Option(True, "--preprocess/--no-preprocess", help="Clean the query before routing"),
) -> None:
    """Show how a query would be routed."""
    cleaned = preprocess_query(q) if preprocess else q
    decision = QueryRouter().route(cleaned, source)
    _emit(
        {
            "processed_query": cleaned,
            "query_type": decision.query_type.value,
            "expanded_query": decision.expanded_query,
            "source_ids": list(decision.source_ids),
            "variants": expand_query(cleaned, variants),
        }
    )


@app.command()
def loadtest(
    q: str = typer.Argument(..., help="Query text issued by every simulated user"),
    docs: Path = typer.Option(..., "--docs", help="Documents file (JSON or JSONL)"),
    source: str = typer.Option(DEFAULT_SOURCE, "--source", help="Source name for the loaded documents"),
    users: int = typer.Option(4, "--users", help="Concurrent simulated users"),
    requests_per_user: int = typer.Option(10, "--requests", help="Sequential requests per user"),
    ramp_up: float = typer.Option(0.0, "--ramp-up", help="Ramp-up window in seconds"),
    think_time: float = typer.Option(0.0, "--think-time", help="Pause between a user's requests in seconds"),
    embeddings: bool = typer.Option(False, "--embeddings", help="Score with embedding cosine similarity"),
    metrics: bool = typer.Option(False, "--metrics", help="Append Prometheus metrics text to the report"),
) -> None:
    """Stress the retrieval pipeline and report latency percentiles."""
    try:
        config = validate_model(
            LoadTestConfig,
            {
                "concurrent_users": users,
                "requests_per_user": requests_per_user,
                "ramp_up_s": ramp_up,
                "think_time_s": think_time,
            },
        )
        orchestrator = _orchestrator(docs, source, embeddings)
    except RetrievalError as exc:
        _fail(exc)
    benchmark = run_load_test(orchestrator, q, config, sources=[source])
    payload = benchmark.to_dict()
    if metrics:
        payload["metrics"] = metrics_payload().decode("utf-8")
    _emit(payload)


if __name__ == "__main__":
    app()
