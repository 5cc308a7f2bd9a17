"""
convergecore CLI - Deploy broker resources and verify the cluster converges.

Commands:
    convergecore render      Print the address scenario's manifests
    convergecore run         Run the address scenario end to end
    convergecore wait-ready  Wait for a cluster's workers to be ready
    convergecore exec        Run a command inside a worker pod
"""

from typing import Optional

import click
from pydantic import ValidationError

from convergecore.config import get_config
from convergecore.logger import configure_logging
from convergecore.tracing import configure_tracing

from .core import exec_command, render, run, wait_ready


@click.group()
@click.version_option(package_name="convergecore")
@click.option("--log-level", type=click.Choice(["debug", "info", "warning", "error"]), default=None,
              help="Logging level (default from CONVERGECORE_LOG_LEVEL)")
@click.option("--log-format", type=click.Choice(["json", "text"]), default=None,
              help="Log format (default from CONVERGECORE_LOG_FORMAT)")
@click.option("--kubeconfig", default=None, help="Path to kubeconfig file")
@click.option("--trace", is_flag=True, help="Print scenario spans to the console")
@click.pass_context
def main(ctx: click.Context, log_level: Optional[str], log_format: Optional[str],
         kubeconfig: Optional[str], trace: bool):
    """convergecore - Verify broker clusters converge to their desired state."""
    overrides = {}
    if log_level:
        overrides["log_level"] = log_level
    if log_format:
        overrides["log_format"] = log_format
    if kubeconfig:
        overrides["kubeconfig"] = kubeconfig
    try:
        cfg = get_config(**overrides)
    except ValidationError as e:
        raise click.ClickException(f"Invalid configuration:\n{e}")

    configure_logging(level=cfg.log_level, fmt=cfg.log_format)
    if trace:
        configure_tracing()
    ctx.obj = cfg


main.add_command(render)
main.add_command(run)
main.add_command(wait_ready)
main.add_command(exec_command)


if __name__ == "__main__":
    main()
