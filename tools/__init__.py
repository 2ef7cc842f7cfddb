from .profile_url import ParseResult, parse_profile_username

__all__ = ["ParseResult", "parse_profile_username"]
