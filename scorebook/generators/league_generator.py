import random
import uuid
from datetime import datetime, timedelta
from faker import Faker
from sqlalchemy.orm import Session

from scorebook.models.user import User, UserRole
from scorebook.models.team import Team, TeamMember, MemberStatus
from scorebook.models.match import Match, MatchStatus

# One Faker per region so squads get plausible local names
fake_in = Faker('en_IN')
fake_au = Faker('en_AU')
fake_en = Faker('en_GB')
fake_nz = Faker('en_NZ')


class LeagueGenerator:
    """Generates a small demo league: teams, squads with a captain, and a fixture"""

    TEAM_NAMES = [
        "Riverside Falcons",
        "Old Town Hawks",
        "Hillcrest Strikers",
        "Harbour Mariners",
        "Northfield Rovers",
        "Valley Royals",
    ]

    VENUES = [
        "Riverside Oval",
        "Memorial Ground",
        "Parkside Common",
        "Harbour Field",
    ]

    # (faker, weight)
    NAME_SOURCES = [
        (fake_in, 50),
        (fake_en, 20),
        (fake_au, 20),
        (fake_nz, 10),
    ]

    @staticmethod
    def _weighted_choice(choices: list[tuple]):
        """Pick from [(item, weight), ...]"""
        items, weights = zip(*choices)
        return random.choices(items, weights=weights, k=1)[0]

    @classmethod
    def generate_user(cls, role: UserRole = UserRole.PLAYER) -> User:
        faker_instance = cls._weighted_choice(cls.NAME_SOURCES)
        name = faker_instance.name_male()
        slug = "".join(c for c in name.lower().replace(" ", ".") if c.isalnum() or c == ".")
        # Suffix keeps emails unique when Faker repeats a name
        handle = f"{slug}.{uuid.uuid4().hex[:6]}"
        return User(
            id=str(uuid.uuid4()),
            email=f"{handle}@example.com",
            full_name=name,
            role=role,
        )

    @classmethod
    def generate_team(cls, session: Session, team_name: str, squad_size: int = 11) -> Team:
        """Create a team whose first member is its captain; all members ACTIVE"""
        if squad_size < 2:
            raise ValueError("A squad needs at least two players")

        captain = cls.generate_user(UserRole.CAPTAIN)
        players = [captain] + [cls.generate_user() for _ in range(squad_size - 1)]
        session.add_all(players)

        team = Team(id=str(uuid.uuid4()), team_name=team_name, captain_id=captain.id)
        session.add(team)
        for player in players:
            session.add(TeamMember(team_id=team.id, player_id=player.id, status=MemberStatus.ACTIVE))
        return team

    @classmethod
    def generate_fixture(cls, session: Session, team_a: Team, team_b: Team, days_ahead: int = 7) -> Match:
        """SCHEDULED match; team_a bats first"""
        match = Match(
            team_a_id=team_a.id,
            team_b_id=team_b.id,
            venue=random.choice(cls.VENUES),
            match_date=datetime.utcnow().replace(hour=10, minute=0, second=0, microsecond=0)
            + timedelta(days=days_ahead),
            status=MatchStatus.SCHEDULED,
        )
        session.add(match)
        return match

    @classmethod
    def create_demo_league(cls, session: Session, team_count: int = 2, squad_size: int = 11) -> dict:
        """
        Create `team_count` teams and a round of fixtures pairing them up, then commit.

        Returns {"teams": [...], "matches": [...]}.
        """
        if not 2 <= team_count <= len(cls.TEAM_NAMES):
            raise ValueError(f"Team count must be between 2 and {len(cls.TEAM_NAMES)}")

        teams = [cls.generate_team(session, name, squad_size) for name in cls.TEAM_NAMES[:team_count]]
        matches = [
            cls.generate_fixture(session, teams[i], teams[i + 1], days_ahead=7 + i)
            for i in range(0, team_count - 1, 2)
        ]
        session.commit()
        return {"teams": teams, "matches": matches}
