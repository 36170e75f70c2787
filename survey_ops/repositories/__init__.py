"""Store repositories for the survey pipeline."""

from .survey import SurveyStore, get_survey_store

__all__ = ["SurveyStore", "get_survey_store"]
