"""Browser automation core: Chrome supervision, logins, sessions, and price scraping."""
