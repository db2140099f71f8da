"""Pure functional core: no database, no clock reads, no configuration files."""
