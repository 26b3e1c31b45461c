"""D-Bo player accounts: credentials, sessions and account tokens."""
