from pydantic import BaseModel, Field


class Activity(BaseModel):
    id: str
    name: str = ""
    notes: str = ""
    start_time: str = ""
    end_time: str | None = None


class ActivityUpdate(BaseModel):
    new_activity_name: str = Field("", description="Kind of the activity to start")
    current_activity_id: str | None = Field(None, description="Page id of the running activity to end")
    notes: str | None = None


class ActivitiesResponse(BaseModel):
    activities: list[str]


class CurrentActivityResponse(BaseModel):
    activity: Activity | None


class ActivityUpdateResponse(BaseModel):
    success: bool
    activity: Activity
