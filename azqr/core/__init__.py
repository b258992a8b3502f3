"""Core module for configuration, errors, paging and Azure clients."""
