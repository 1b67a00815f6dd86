# vimmarch/__main__.py
from vimmarch.cli import app


def main():
    """
    Main application
    """
    app()


if __name__ == "__main__":
    main()
