"""AutoTask: turns GitHub repository changes into Linear tasks.

This package implements a thin orchestration pipeline:
- GitHub webhook verification and event normalization
- Analysis prompt building from commits and pull requests
- LLM-based task suggestion generation with best-effort validation
- Mapping confident suggestions onto Linear issue creates and updates
- Pipeline events, Prometheus metrics, and health reporting
"""

__version__ = "1.0.0"
