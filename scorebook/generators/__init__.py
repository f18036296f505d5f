from scorebook.generators.league_generator import LeagueGenerator

__all__ = ["LeagueGenerator"]
