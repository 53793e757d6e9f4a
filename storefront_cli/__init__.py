"""Command line entry points for the storefront checkout."""
