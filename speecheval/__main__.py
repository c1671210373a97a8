"""Entry point for ``python -m speecheval``."""

from dotenv import load_dotenv

from speecheval.cli import cli

if __name__ == "__main__":
    load_dotenv()
    cli()
