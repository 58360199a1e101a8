"""Entry point for ``python -m ksail_oci``."""

from ksail_oci.cli import app

app(prog_name="ksail-oci")
