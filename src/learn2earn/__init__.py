"""Learn2Earn Stage: proof submissions, moderation and on-chain reward claims."""

__version__ = "0.1.0"
