"""Dating backend: accounts, profiles and daily candidate quotas."""
