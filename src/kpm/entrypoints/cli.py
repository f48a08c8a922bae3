from pathlib import Path
import json as _json
import sys
from typing import NoReturn

import typer

from kpm.application.archive import unpack_package
from kpm.application.reporting import Reporter
from kpm.application.result_serialization import exit_code_for, serialize_result
from kpm.application.run import pack, resolve_package, run
from kpm.domain.errors import KpmError
from kpm.domain.options import CompileOptions, CompilerOptions

app = typer.Typer(add_completion=False)


def _fail(error: KpmError, *, as_json: bool, command: str, args: list[str]) -> NoReturn:
    if as_json:
        typer.echo(_json.dumps(serialize_result(command, args, error=error)))
    else:
        typer.echo(f"error: {error}", err=True)
        if error.hint:
            typer.echo(f"hint: {error.hint}", err=True)
    raise typer.Exit(exit_code_for(error))


def _options(
    package: Path | None,
    *,
    vendor: bool,
    no_sum_check: bool,
    quiet: bool,
) -> CompileOptions:
    return CompileOptions(
        package_path=str(package) if package is not None else None,
        vendor=vendor,
        no_sum_check=no_sum_check,
        log_writer=None if quiet else sys.stderr,
    )


@app.command("run")
def run_command(
    entries: list[str] = typer.Argument(None),
    package: Path | None = typer.Option(None, "--package", "-p"),
    vendor: bool = typer.Option(False, "--vendor"),
    no_sum_check: bool = typer.Option(False, "--no-sum-check"),
    settings: Path | None = typer.Option(None, "--settings", "-Y"),
    define: list[str] = typer.Option(None, "--define", "-D"),
    output_format: str = typer.Option("yaml", "--format"),
    json: bool = typer.Option(False, "--json"),
    quiet: bool = typer.Option(False, "--quiet", "-q"),
):
    options = _options(package, vendor=vendor, no_sum_check=no_sum_check, quiet=quiet)
    options = options.with_entries(*(entries or []))
    if settings is not None:
        options = options.with_settings(str(settings))
    if define:
        arguments = tuple(arg for value in define for arg in ("-D", value))
        options = options.merge(CompilerOptions(arguments=arguments))
    args = list(entries or [])
    try:
        result = run(options)
    except KpmError as e:
        _fail(e, as_json=json, command="run", args=args)
    if json:
        typer.echo(_json.dumps(serialize_result("run", args, result=result)))
    elif output_format == "json":
        typer.echo(result.raw_json)
    else:
        typer.echo(result.raw_yaml)


@app.command()
def resolve(
    package: Path = typer.Argument(Path(".")),
    vendor: bool = typer.Option(False, "--vendor"),
    no_sum_check: bool = typer.Option(False, "--no-sum-check"),
    quiet: bool = typer.Option(False, "--quiet", "-q"),
):
    options = _options(package, vendor=vendor, no_sum_check=no_sum_check, quiet=quiet)
    try:
        resolved = resolve_package(options)
    except KpmError as e:
        _fail(e, as_json=False, command="resolve", args=[str(package)])
    for name, dep in resolved.dependencies.items():
        typer.echo(f"{name} {dep.entry.version} {dep.entry.source.locator()}")


@app.command()
def vendor(
    package: Path = typer.Argument(Path(".")),
    quiet: bool = typer.Option(False, "--quiet", "-q"),
):
    options = _options(package, vendor=True, no_sum_check=False, quiet=quiet)
    try:
        resolved = resolve_package(options)
    except KpmError as e:
        _fail(e, as_json=False, command="vendor", args=[str(package)])
    typer.echo(f"vendored {len(resolved.dependencies)} dependencies into {resolved.root / 'vendor'}")


@app.command("pack")
def pack_command(
    package: Path = typer.Argument(Path(".")),
    output: Path | None = typer.Option(None, "--output", "-o"),
    vendor: bool = typer.Option(False, "--vendor"),
    quiet: bool = typer.Option(False, "--quiet", "-q"),
):
    options = _options(package, vendor=vendor, no_sum_check=False, quiet=quiet)
    try:
        archive = pack(options, output)
    except KpmError as e:
        _fail(e, as_json=False, command="pack", args=[str(package)])
    typer.echo(str(archive))


@app.command()
def unpack(
    archive: Path,
    quiet: bool = typer.Option(False, "--quiet", "-q"),
):
    try:
        root = unpack_package(archive.absolute(), Reporter(None if quiet else sys.stderr))
    except KpmError as e:
        _fail(e, as_json=False, command="unpack", args=[str(archive)])
    typer.echo(str(root))
