from mediastack.global_logger import logger
from mediastack.cli import main as cli_main
import os, sys, tomllib


def log_ascii_art():
    pyproject_path = os.path.join(os.path.dirname(os.path.abspath(__file__)), "pyproject.toml")
    with open(pyproject_path, "rb") as file:
        pyproject = tomllib.load(file)
        version = pyproject["tool"]["poetry"]["version"]

    ascii_art = f"""
 __  __          _ _          ____  _             _
|  \\/  | ___  __| (_) __ _   / ___|| |_ __ _  ___| | __
| |\\/| |/ _ \\/ _` | |/ _` |  \\___ \\| __/ _` |/ __| |/ /
| |  | |  __/ (_| | | (_| |   ___) | || (_| | (__|   <
|_|  |_|\\___|\\__,_|_|\\__,_|  |____/ \\__\\__,_|\\___|_|\\_\\

                  Version: {version}
"""
    logger.info(ascii_art)


def main():
    # stdout carries only the report in --json mode
    if "--json" not in sys.argv[1:]:
        log_ascii_art()
    cli_main()


if __name__ == "__main__":
    main()
