"""Allow ``python -m sales_intake``."""

from sales_intake.cli import app

if __name__ == "__main__":
    app()
