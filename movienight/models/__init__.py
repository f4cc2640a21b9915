from movienight.models.base import Base  # noqa: F401
from movienight.models.invite_code import InviteCode, InviteCodeStatus  # noqa: F401
from movienight.models.movie import Movie, MovieSource, MovieStatus  # noqa: F401
from movienight.models.session import SessionStatus, VotePolicy, VotingSession  # noqa: F401
from movienight.models.vote import Vote  # noqa: F401
from movienight.models.voter import Voter  # noqa: F401
