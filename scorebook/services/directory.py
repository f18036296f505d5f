"""
Read-only lookups of teams, captains and rosters
"""
from sqlalchemy.orm import Session

from scorebook.models.user import User
from scorebook.models.team import Team, TeamMember, MemberStatus
from scorebook.models.match import Match


class DirectoryService:
    def __init__(self, session: Session):
        self.session = session

    def get_captain_ids(self, match: Match) -> tuple:
        """(team A captain, team B captain) for a match"""
        return match.team_a.captain_id, match.team_b.captain_id

    def is_match_captain(self, match: Match, user_id: str) -> bool:
        return user_id is not None and user_id in self.get_captain_ids(match)

    def get_opponent_captain_id(self, match: Match, requester_id: str):
        """Captain of whichever team the requester does not captain"""
        team_a_captain, team_b_captain = self.get_captain_ids(match)
        return team_b_captain if team_a_captain == requester_id else team_a_captain

    def is_active_member(self, team_id: str, player_id: str) -> bool:
        member = (
            self.session.query(TeamMember)
            .filter_by(team_id=team_id, player_id=player_id, status=MemberStatus.ACTIVE)
            .first()
        )
        return member is not None

    def get_active_roster(self, team_id: str) -> list[User]:
        return (
            self.session.query(User)
            .join(TeamMember, TeamMember.player_id == User.id)
            .filter(TeamMember.team_id == team_id, TeamMember.status == MemberStatus.ACTIVE)
            .order_by(User.full_name)
            .all()
        )

    def get_team_ids_captained_by(self, user_id: str) -> list[str]:
        rows = self.session.query(Team.id).filter(Team.captain_id == user_id).all()
        return [row[0] for row in rows]

    def users_exist(self, user_ids) -> bool:
        wanted = set(user_ids)
        found = self.session.query(User.id).filter(User.id.in_(wanted)).count()
        return found == len(wanted)
