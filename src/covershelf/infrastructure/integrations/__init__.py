"""HTTP integrations - shared client pool, cover downloader and cover providers."""
