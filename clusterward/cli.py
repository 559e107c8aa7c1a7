import logging
import sys

import typer

from clusterward.commands import certs, haproxy, kubeconfig, operator, purge
from clusterward.logging import setup_logging

app = typer.Typer()

# Global debug flag
debug_mode = False

# Add all command groups
app.add_typer(operator.app, name="operator")
app.add_typer(purge.app, name="purge")
app.add_typer(kubeconfig.app, name="kubeconfig")
app.add_typer(haproxy.app, name="haproxy")
app.command("rotate-certs")(certs.rotate_certs)


# Global options callback
@app.callback()
def main(
    debug: bool = typer.Option(False, "--debug", "-d", help="Enable debug logging"),
):
    """Clusterward - self-managing cluster operator."""
    global debug_mode
    debug_mode = debug
    setup_logging(debug)
    if debug:
        logging.debug("Debug mode enabled")


if __name__ == "__main__":
    try:
        app()
    except Exception as e:
        if debug_mode:
            import traceback
            logging.error(f"Unhandled exception: {e}\n{traceback.format_exc()}")
        else:
            logging.error(f"Error: {e}")
        sys.exit(1)
