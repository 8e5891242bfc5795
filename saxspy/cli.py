import logging

import click

from saxspy import SAXS


@click.group(help="Small-angle X-ray scattering intensities and their derivatives.")
def cli() -> None:
    pass


@cli.command()
@click.option("--config", required=True, help="Run description (JSON or YAML).")
@click.option("--positions", default="", help="Positions file; replaces particles.file of the config.")
@click.option("--output", default="", help="Result file, format chosen by extension; replaces the output section.")
@click.option("--gradients/--no-gradients", default=False, help="Also write atom and box derivatives.")
@click.option("--quiet", is_flag=True, help="Log warnings and errors only.")
def compute(config: str, positions: str, output: str, gradients: bool, quiet: bool) -> None:
    """Evaluate the intensity profile once and write it out."""
    logging.basicConfig(
        level=logging.WARNING if quiet else logging.INFO,
        format="%(asctime)s %(name)s %(levelname)s: %(message)s",
    )
    handler = SAXS(config, path_positions=positions)
    result = handler.run()
    for label, path, value in zip(result.labels, result.paths, result.intensity):
        click.echo(f"{label}\t{path.value}\t{value:.10g}")
    handler.export(output or None, include_gradients=gradients)
