from mediastack.backup import create_backup, restore_backup, update_stack
from mediastack.config_loader import ConfigManager
from mediastack.global_logger import fail, logger
from mediastack.logger import add_file_handler, set_console_stream, set_level
from mediastack.pipeline import run_setup, run_verification
from mediastack.preflight import run_check_config, run_preflight
from mediastack.results import PreconditionError
from mediastack.run_context import RunContext
import click, sys


MODES = ("preflight", "check_config", "test", "update", "backup", "restore")


def load_config(path) -> ConfigManager:
    """Load and validate the declared configuration or raise PreconditionError."""
    config = ConfigManager(path)
    loaded, error = config.load()
    if not loaded:
        raise PreconditionError(error)
    problems = config.validate() + [f"{f}: required" for f in config.missing_required()]
    if problems:
        for problem in problems:
            fail("config invalid: %s", problem)
        raise PreconditionError(f"{len(problems)} configuration error(s)")
    return config


def _configure_logging(config: ConfigManager, verbose: bool) -> None:
    set_level(logger, "DEBUG" if verbose else (config.get("logging.level") or "INFO"))
    log_file = config.get("logging.file")
    if log_file:
        add_file_handler(logger, log_file)


def _confirm(message: str) -> bool:
    return click.confirm(f"  {message}\n  Continue?", default=False)


@click.command(context_settings={"help_option_names": ["-h", "--help"]})
@click.option("--preflight", is_flag=True, help="Check local prerequisites and exit.")
@click.option("--check-config", "check_config", is_flag=True, help="Validate the config file and exit.")
@click.option("--test", is_flag=True, help="Run the verification suite only.")
@click.option("--update", is_flag=True, help="Back up, pull new images and restart the stack.")
@click.option("--backup", is_flag=True, help="Archive service configs into <media_dir>/backups.")
@click.option("--restore", type=click.Path(dir_okay=False), default=None, help="Restore configs from a backup archive.")
@click.option(
    "--config",
    "-c",
    "config_path",
    type=click.Path(dir_okay=False),
    default=None,
    envvar="MEDIA_STACK_CONFIG",
    help="Path to config.toml or config.json (default: config.toml).",
)
@click.option("--json", "as_json", is_flag=True, help="Print the verification report as JSON.")
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging.")
@click.option("--yes", "-y", is_flag=True, help="Do not ask for confirmation.")
def main(preflight, check_config, test, update, backup, restore, config_path, as_json, verbose, yes):
    """Configure, connect and verify the self-hosted media stack."""
    selected = [m for m, on in zip(MODES, (preflight, check_config, test, update, backup, restore)) if on]
    if len(selected) > 1:
        raise click.UsageError("choose at most one of --preflight, --check-config, --test, --update, --backup, --restore")
    if as_json:
        set_console_stream(logger, sys.stderr)
    if verbose:
        set_level(logger, "DEBUG")

    if preflight:
        sys.exit(run_preflight(ConfigManager(config_path)))
    if check_config:
        sys.exit(run_check_config(ConfigManager(config_path)))

    try:
        config = load_config(config_path)
        _configure_logging(config, verbose)

        if backup:
            create_backup(config)
            sys.exit(0)
        if restore:
            sys.exit(restore_backup(config, restore, confirm=None if yes else _confirm))
        if update:
            sys.exit(update_stack(config))

        ctx = RunContext(config)
        if test:
            report = run_verification(ctx)
        else:
            report = run_setup(ctx).report
    except PreconditionError as e:
        fail("%s", e)
        sys.exit(1)

    if as_json:
        click.echo(report.model_dump_json(indent=2))
    sys.exit(report.exit_code)


if __name__ == "__main__":
    main()
