from .models import LoadState, WorkoutRecord
from .store import (
    QueryPage,
    StoreError,
    StoreQueryFailed,
    StoreUnavailable,
    WorkoutStore,
)
from .worker import WorkoutListWorker
from .workout_list import WorkoutList, WorkoutListListener, call_directly
