"""Reflex configuration for the editable reference-data demo app."""

import reflex as rx

config = rx.Config(
    app_name="masterdata_demo",
    plugins=[rx.plugins.SitemapPlugin()],
)
