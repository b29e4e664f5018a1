"""Command-line interface for docweave."""

import argparse
import asyncio
import re
import sys

import structlog

from docweave.config import get_settings
from docweave.errors import DocweaveError
from docweave.ingestion import SyncJobManager, SyncPipeline
from docweave.models.document import Repository
from docweave.models.search import SearchMode
from docweave.models.sync import SyncMode, SyncStatus
from docweave.observability import configure_logging, get_metrics
from docweave.retrieval import get_query_cache
from docweave.search import build_search_components, build_search_service
from docweave.storage import (
    DocumentRepository,
    LinkRepository,
    RepositoryRepository,
    SyncJobRepository,
    dispose_engine,
    get_session_factory,
    init_database,
)

logger = structlog.get_logger()

SYNC_MODES = {
    "full": SyncMode.FULL_SCAN,
    "incremental": SyncMode.INCREMENTAL,
    "commit": SyncMode.SPECIFIC_COMMIT,
}


def _slug(text: str) -> str:
    return re.sub(r"[^a-z0-9]+", "-", text.lower()).strip("-")


async def cmd_init_db(args):
    await init_database()
    logger.info("database_initialized", url=get_settings().database_url)


async def cmd_add_repo(args):
    await init_database()
    repository = Repository(
        id=args.id or _slug(f"{args.project}-{args.name}"),
        project_id=args.project,
        name=args.name,
        clone_url=args.url,
        default_branch=args.branch,
        local_path=args.local_path,
    )
    async with get_session_factory()() as session:
        await RepositoryRepository(session).upsert(repository)
    logger.info("repository_added", repository_id=repository.id, project_id=repository.project_id)
    print(repository.id)


async def cmd_sync(args):
    await init_database()
    components = build_search_components()
    try:
        pipeline = SyncPipeline(indexers=components.indexers)
        manager = SyncJobManager(pipeline, cache=get_query_cache(), background_indexing=False)
        job = await manager.start_sync(
            args.repository_id,
            branch=args.branch,
            mode=SYNC_MODES[args.mode],
            target_commit=args.commit,
            enable_embedding=not args.no_embedding,
        )
        job = await manager.wait(job.id)
    finally:
        await components.close()

    print(f"\n Job {job.id}: {job.status.value}")
    print(f"   mode: {job.mode.value} | branch: {job.target_branch}")
    print(f"   documents: {job.processed_documents}/{job.total_documents}")
    if job.last_synced_commit:
        print(f"   last commit: {job.last_synced_commit}")
    if job.error_message:
        print(f"   error: {job.error_message}")
    if job.status != SyncStatus.SUCCEEDED:
        sys.exit(1)


async def cmd_jobs(args):
    async with get_session_factory()() as session:
        jobs = await SyncJobRepository(session).get_by_repository(args.repository_id, args.limit)
    for job in jobs:
        commit = (job.last_synced_commit or "")[:7]
        print(f"{job.id}  {job.status.value:<9}  {job.mode.value:<15}  {commit:<7}  {job.created_at:%Y-%m-%d %H:%M}")


async def cmd_search(args):
    components = build_search_components()
    try:
        service = build_search_service(components)
        response = await service.search(args.project, args.query, SearchMode(args.mode), args.top_k)
    finally:
        await components.close()

    print(f"\n Query: {args.query}")
    print(f" Mode: {response.mode.value} | Latency: {response.latency_ms:.1f}ms\n")

    for i, result in enumerate(response.results, 1):
        print(f"{i}. {result.title or result.path}")
        print(f"    {result.path} @ {(result.commit_sha or '')[:7]}")
        if result.heading_path:
            print(f"    {result.heading_path}")
        print(f"    Score: {result.score:.4f}")
        if result.scores is not None:
            if result.scores.keyword_rank is not None:
                print(f"     Keyword: rank {result.scores.keyword_rank}")
            if result.scores.semantic_score is not None:
                print(f"     Semantic: {result.scores.semantic_score:.4f} (rank {result.scores.semantic_rank})")
        snippet = (result.highlighted_snippet or result.snippet).replace("\n", " ")
        print(f"   {snippet[:200]}")
        print()


async def cmd_graph_query(args):
    components = build_search_components()
    try:
        if components.synthesizer is None:
            logger.error("graph_disabled", hint="Set DOCWEAVE_NEO4J_ENABLED=true")
            sys.exit(1)
        if args.execute:
            records = await components.synthesizer.execute(args.question)
            for record in records:
                print(record)
        else:
            print(await components.synthesizer.generate_query(args.question))
    finally:
        await components.close()


async def cmd_links(args):
    async with get_session_factory()() as session:
        documents = DocumentRepository(session)
        links = LinkRepository(session)
        paths = {d.id: d.path for d in await documents.get_all(args.repository_id, include_deleted=True)}
        if args.path:
            document = await documents.get_by_path(args.repository_id, args.path)
            if document is None:
                logger.error("document_not_found", path=args.path)
                sys.exit(1)
            rows = await links.get_outgoing(document.id)
        else:
            rows = await links.get_broken(args.repository_id)

    for link in rows:
        target = paths.get(link.target_document_id, link.link_target)
        status = "BROKEN" if link.broken else link.link_type.value
        print(f"{paths.get(link.source_document_id, '?')}:{link.line_number}  [{status}]  {link.link_text} -> {target}")


def cmd_metrics(args):
    """Print Prometheus metrics of this process."""
    payload, _ = get_metrics()
    print(payload.decode())


def _run(handler):
    async def runner(args):
        try:
            await handler(args)
        finally:
            await dispose_engine()

    def command(args):
        try:
            asyncio.run(runner(args))
        except DocweaveError as e:
            logger.error("command_failed", error=e.message, **e.details)
            sys.exit(1)

    return command


def main():
    """Main CLI entrypoint."""
    settings = get_settings()

    parser = argparse.ArgumentParser(
        prog="docweave",
        description="Git-backed documentation search with graph RAG",
    )
    parser.add_argument("--log-level", default=settings.log_level, help="Log level")
    parser.add_argument("--log-json", action="store_true", default=settings.log_json, help="JSON log output")
    subparsers = parser.add_subparsers(dest="command", required=True)

    # init-db command
    init_parser = subparsers.add_parser("init-db", help="Create database tables")
    init_parser.set_defaults(func=_run(cmd_init_db))

    # add-repo command
    add_parser = subparsers.add_parser("add-repo", help="Register a repository")
    add_parser.add_argument("--project", "-p", required=True, help="Project ID")
    add_parser.add_argument("--name", "-n", required=True, help="Repository name")
    add_parser.add_argument("--url", "-u", required=True, help="Clone URL or local path")
    add_parser.add_argument("--branch", "-b", default="main", help="Default branch")
    add_parser.add_argument("--local-path", help="Working copy directory")
    add_parser.add_argument("--id", help="Repository ID (defaults to <project>-<name>)")
    add_parser.set_defaults(func=_run(cmd_add_repo))

    # sync command
    sync_parser = subparsers.add_parser("sync", help="Sync a repository")
    sync_parser.add_argument("repository_id", help="Repository ID")
    sync_parser.add_argument("--branch", "-b", help="Branch (defaults to the repository's)")
    sync_parser.add_argument("--mode", "-m", choices=sorted(SYNC_MODES), default="incremental")
    sync_parser.add_argument("--commit", "-c", help="Target commit (required for --mode commit)")
    sync_parser.add_argument("--no-embedding", action="store_true", help="Skip indexing after sync")
    sync_parser.set_defaults(func=_run(cmd_sync))

    # jobs command
    jobs_parser = subparsers.add_parser("jobs", help="List sync jobs of a repository")
    jobs_parser.add_argument("repository_id", help="Repository ID")
    jobs_parser.add_argument("--limit", type=int, default=20)
    jobs_parser.set_defaults(func=_run(cmd_jobs))

    # search command
    search_parser = subparsers.add_parser("search", help="Search a project")
    search_parser.add_argument("project", help="Project ID")
    search_parser.add_argument("query", help="Search query")
    search_parser.add_argument("--mode", "-m", choices=[m.value for m in SearchMode], default="hybrid")
    search_parser.add_argument("--top-k", "-k", type=int, default=settings.default_top_k)
    search_parser.set_defaults(func=_run(cmd_search))

    # graph-query command
    graph_parser = subparsers.add_parser("graph-query", help="Turn a question into Cypher")
    graph_parser.add_argument("question", help="Natural-language question")
    graph_parser.add_argument("--execute", "-x", action="store_true", help="Run the query and print records")
    graph_parser.set_defaults(func=_run(cmd_graph_query))

    # links command
    links_parser = subparsers.add_parser("links", help="Show document links")
    links_parser.add_argument("repository_id", help="Repository ID")
    links_parser.add_argument("--path", help="Show outgoing links of one document instead of broken links")
    links_parser.set_defaults(func=_run(cmd_links))

    # metrics command
    metrics_parser = subparsers.add_parser("metrics", help="Print Prometheus metrics")
    metrics_parser.set_defaults(func=cmd_metrics)

    args = parser.parse_args()
    configure_logging(args.log_level, json=args.log_json)
    args.func(args)


if __name__ == "__main__":
    main()
