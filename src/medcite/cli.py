"""
Command-line interface for MedCite.

Commands:
- ask: Answer a question with citations (full pipeline)
- search: Retrieve passages for a query
- citations: Extract and parse citations from an answer text
- index: Index passages from JSONL into Weaviate
- diagnose: Probe the retrieval stack
"""

import sys

import click
from rich.console import Console
from rich.markup import escape

from medcite.errors import is_failure
from medcite.logging import configure_logging

console = Console()


def _print_citations(citations) -> None:
    from medcite.generation.citations import format_citation_text, format_doi_link

    for citation in citations:
        marker = escape(f"[{citation.reference_number}]")
        console.print(f"[bold]{marker}[/bold] {escape(format_citation_text(citation))}")
        if citation.doi:
            console.print(f"    [blue]{format_doi_link(citation.doi)}[/blue]")
        elif citation.url:
            console.print(f"    [blue]{citation.url}[/blue]")


@click.group()
@click.version_option(package_name="medcite-rag")
def main() -> None:
    """MedCite RAG - cited answers for medical questions."""
    configure_logging()


@main.command()
@click.argument("message")
@click.option("--specialty-id", default=None, help="Restrict retrieval to one specialty")
@click.option("--specialty-name", default=None, help="Specialty named in the system prompt")
def ask(message: str, specialty_id: str | None, specialty_name: str | None) -> None:
    """Answer a question with citations."""
    from medcite.generation import AnswerService, build_llm
    from medcite.retrieval import RetrievalPipeline, VectorRetriever
    from medcite.vectorstore import EmbeddingClient, WeaviatePassageStore

    with WeaviatePassageStore.from_settings() as store:
        retriever = VectorRetriever(store, EmbeddingClient.from_settings())
        service = AnswerService(RetrievalPipeline(retriever), build_llm())

        console.print(f"[yellow]Answering: {escape(message)}[/yellow]")
        result = service.answer(message, specialty_id=specialty_id, specialty_name=specialty_name)

    if is_failure(result):
        console.print(f"[red]{result.kind}: {escape(result.reason)}[/red]")
        sys.exit(1)

    if "retrieval_error" in result.metadata:
        console.print("[yellow]Retrieval failed; answered without reference context.[/yellow]")

    console.print()
    console.print(result.answer, markup=False)

    if result.citations:
        console.print("\n[green]References:[/green]")
        _print_citations(result.citations)

    if result.sources:
        console.print("\n[green]Context passages:[/green]")
        for number, passage in result.sources.items():
            marker = escape(f"[{number}]")
            console.print(f"[bold]{marker}[/bold] {escape(passage.id)} (similarity: {passage.similarity:.4f})")


@main.command()
@click.argument("query")
@click.option("--specialty-id", default=None, help="Filter by specialty id")
@click.option("--threshold", default=None, type=float, help="Minimum similarity (0-1]")
@click.option("--limit", default=None, type=int, help="Number of results")
def search(query: str, specialty_id: str | None, threshold: float | None, limit: int | None) -> None:
    """Retrieve passages for a query."""
    from medcite.retrieval import RetrievalPipeline, VectorRetriever
    from medcite.vectorstore import EmbeddingClient, WeaviatePassageStore

    with WeaviatePassageStore.from_settings() as store:
        stats = store.get_stats()
        if stats["count"] == 0:
            console.print("[red]No passages indexed. Run: medcite index FILE[/red]")
            return

        console.print(f"[yellow]Searching for: {escape(query)}[/yellow]")

        pipeline = RetrievalPipeline(VectorRetriever(store, EmbeddingClient.from_settings()))
        result = pipeline.retrieve(query, specialty_id=specialty_id, threshold=threshold, limit=limit)

    if is_failure(result):
        console.print(f"[red]{result.kind}: {escape(result.reason)}[/red]")
        sys.exit(1)

    if result.terms:
        console.print(f"[blue]Terms:[/blue] {', '.join(result.terms)}")

    if not result.passages:
        console.print("[yellow]No results found.[/yellow]")
        return

    console.print(f"\n[green]Found {len(result)} results ({result.metadata['mode']} query):[/green]\n")

    for i, passage in enumerate(result.passages, 1):
        console.print(f"[bold]--- Result {i} (similarity: {passage.similarity:.4f}) ---[/bold]")
        citation = passage.citation_string()
        if citation:
            console.print(f"[blue]Citation:[/blue] {escape(citation)}")
        preview = passage.content[:300] + "..." if len(passage.content) > 300 else passage.content
        console.print(f"[blue]Content:[/blue] {escape(preview)}")
        console.print()


@main.command()
@click.argument("file", type=click.File("r", encoding="utf-8"), default="-")
def citations(file) -> None:
    """Extract citations from an answer (FILE or stdin)."""
    from medcite.generation.citations import process_answer

    clean, parsed = process_answer(file.read())

    console.print("[green]Answer:[/green]")
    console.print(clean, markup=False)

    if not parsed:
        console.print("\n[yellow]No citations found.[/yellow]")
        return

    console.print(f"\n[green]{len(parsed)} citations:[/green]")
    _print_citations(parsed)


@main.command()
@click.argument("file", type=click.Path(exists=True, dir_okay=False))
@click.option("--reset", is_flag=True, help="Delete existing data before indexing")
def index(file: str, reset: bool) -> None:
    """Index passages (JSONL) into Weaviate."""
    from medcite.vectorstore import EmbeddingClient, WeaviatePassageStore, load_passages_from_jsonl

    console.print(f"[yellow]Loading passages from {file}...[/yellow]")
    records = load_passages_from_jsonl(file)
    console.print(f"[blue]Loaded {len(records)} passages[/blue]")

    with WeaviatePassageStore.from_settings() as store:
        if reset:
            console.print("[yellow]Resetting collection...[/yellow]")
            store.delete_all()

        stats = store.get_stats()
        console.print(f"[blue]Current passages in store: {stats['count']}[/blue]")

        console.print("[yellow]Indexing passages (generating embeddings via OpenAI)...[/yellow]")
        indexed = store.index_passages(records, EmbeddingClient.from_settings())

        stats = store.get_stats()
        console.print(f"[green]✓ Indexed {indexed} passages. Total: {stats['count']}[/green]")


@main.command()
def diagnose() -> None:
    """Probe the embedding and vector-store path."""
    from medcite.generation.answer import run_diagnostics
    from medcite.retrieval import VectorRetriever
    from medcite.vectorstore import EmbeddingClient, WeaviatePassageStore

    with WeaviatePassageStore.from_settings() as store:
        report = run_diagnostics(VectorRetriever(store, EmbeddingClient.from_settings()))
        stats = store.get_stats()

    color = "green" if report["status"] == "operational" else "red"
    console.print(f"[{color}]Status: {report['status']}[/{color}]")
    console.print(f"[blue]Embedding model:[/blue] {report['model']['embedding']} "
                  f"({report['model']['embedding_dimensions']} dims)")
    console.print(f"[blue]Indexed passages:[/blue] {stats['count']}")
    if report["error"]:
        console.print(f"[red]Error: {escape(report['error'])}[/red]")
        sys.exit(1)


if __name__ == "__main__":
    main()
