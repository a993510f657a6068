"""shipkey - discover, store and sync developer API keys."""

VERSION = "0.1.4"
