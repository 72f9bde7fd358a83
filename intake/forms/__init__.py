"""Forms — catalog of sites, form definitions and comment policies."""
