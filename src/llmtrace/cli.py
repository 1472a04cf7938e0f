"""Command-line interface for llmtrace."""

import json
from typing import Annotated, Optional

import typer

from llmtrace.instrumentation import DEFAULT_PROMPT, QueryHandler, SimulatedLLMClient
from llmtrace.logging import configure_logging
from llmtrace.tracing.config import TracingConfig, configure_tracing

app = typer.Typer(
    name="llmtrace",
    help="Trace LLM-backed requests and export them as OTLP/JSON",
    add_completion=False,
)


@app.command(name="query")
def query_cmd(
    prompt: Annotated[
        str,
        typer.Option("--prompt", "-p", help="Prompt sent to the simulated LLM"),
    ] = DEFAULT_PROMPT,
    batch: Annotated[
        Optional[bool],
        typer.Option("--batch/--immediate", help="Buffer spans or export each span as it ends"),
    ] = None,
    console: Annotated[
        bool,
        typer.Option("--console", help="Print spans instead of sending them to the collector"),
    ] = False,
    delay: Annotated[
        float,
        typer.Option("--delay", help="Simulated LLM latency in seconds"),
    ] = 0.1,
    log_level: Annotated[
        str,
        typer.Option("--log-level", help="Diagnostic log level"),
    ] = "WARNING",
    log_format: Annotated[
        str,
        typer.Option("--log-format", help="Diagnostic log format (console, json)"),
    ] = "console",
) -> None:
    """Run the instrumented query operation once."""
    try:
        configure_logging(level=log_level, format=log_format)
    except ValueError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(2)

    config = TracingConfig.from_env()
    if batch is not None:
        config.batch_export = batch
    if console:
        config.console_export = True

    tracer = configure_tracing(config, output=typer.get_text_stream("stderr") if console else None)
    try:
        handler = QueryHandler(
            tracer, SimulatedLLMClient(delay_seconds=delay), flush_on_complete=True
        )
        result = handler.handle(prompt)
    finally:
        tracer.shutdown()

    typer.echo(json.dumps(result.to_dict()))
    if not result.ok:
        raise typer.Exit(1)


@app.command(name="config")
def config_cmd() -> None:
    """Show the configuration resolved from the environment."""
    config = TracingConfig.from_env()
    typer.echo(json.dumps(config.redacted().to_dict(), indent=2))
    if config.uses_placeholders:
        typer.echo("Warning: placeholder endpoint or credentials in use", err=True)


def main() -> None:
    """Entry point for CLI."""
    app()


if __name__ == "__main__":
    main()
