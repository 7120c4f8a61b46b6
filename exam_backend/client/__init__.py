"""
Client-side building blocks: job APIs, the job poller and the review session.
"""

from .http_api import HttpJobApi  # noqa: F401
from .poller import JobPoller, PollSnapshot, PollState  # noqa: F401
from .review import ReviewSession  # noqa: F401
from .simulated_api import SimulatedJobApi  # noqa: F401
