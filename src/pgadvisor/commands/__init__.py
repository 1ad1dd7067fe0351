"""pgadvisor commands."""
