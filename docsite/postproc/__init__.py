"""Post-processing of generated pages: protected regions and site navigation."""
