# Copyright 2026 Storefront Authors
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.

"""
Lesson progress sync.

Progress is written to the local mapping first and then pushed to the
enrollment service. A failed push is reported to the user but the local
state is kept; the next successful push sends the full mapping again.
"""

import logging
from typing import Dict, List, Optional

from .constants import Constants
from .models import LessonProgress
from .presentation import AlertButton, PresentationModel
from .services import AlertPresenter, EnrollmentService

logger = logging.getLogger(__name__)

constants = Constants()


class LessonProgressTracker:
    """Tracks lesson progress of one enrolled course."""

    def __init__(
        self,
        course_id: str,
        enrollment_service: EnrollmentService,
        presenter: Optional[AlertPresenter] = None,
        lessons: Optional[List[LessonProgress]] = None,
    ):
        self.course_id = course_id
        self.enrollment_service = enrollment_service
        self.presenter = presenter
        self._lessons: Dict[str, LessonProgress] = {
            lesson.lesson_id: lesson for lesson in lessons or []
        }

    @property
    def lessons(self) -> List[LessonProgress]:
        return list(self._lessons.values())

    def get(self, lesson_id) -> Optional[LessonProgress]:
        return self._lessons.get(str(lesson_id))

    def is_completed(self, lesson_id) -> bool:
        lesson = self.get(lesson_id)
        return lesson is not None and lesson.completed

    def overall_progress(self, total_lessons: int) -> float:
        """Fraction of the course's lessons that are completed, between 0 and 1."""
        if total_lessons <= 0:
            return 0.0
        completed = sum(1 for lesson in self._lessons.values() if lesson.completed)
        return min(completed / total_lessons, 1.0)

    async def mark_progress(self, lesson_id, watched_duration: int, completed: bool) -> bool:
        """
        Record progress locally, then sync it to the enrollment service.

        Returns:
            True if the remote update succeeded
        """
        lesson_id = str(lesson_id)
        self._lessons[lesson_id] = LessonProgress(
            lesson_id=lesson_id,
            watched_duration=max(int(watched_duration or 0), 0),
            completed=completed,
        )

        try:
            await self.enrollment_service.update_lesson_progress(self.course_id, self.lessons)
        except Exception as e:
            logger.warning(f"Lesson progress sync failed for course {self.course_id}: {e}")
            self._alert(str(e) or "Failed to update lesson progress.")
            return False
        return True

    async def on_playback_status(self, lesson_id, position_ms: int, duration_ms: int) -> bool:
        """
        Handle a playback status update from the video player.

        Marks the lesson completed once the threshold share of it has been
        watched. Returns True when this update marked the lesson completed.
        """
        if not duration_ms or duration_ms <= 0:
            return False
        if self.is_completed(lesson_id):
            return False
        if position_ms / duration_ms < constants.LESSON_COMPLETION_THRESHOLD:
            return False

        await self.mark_progress(lesson_id, position_ms, completed=True)
        return True

    def _alert(self, message: str) -> None:
        if self.presenter is None:
            return
        try:
            self.presenter.present(
                PresentationModel(
                    title="Error",
                    message=message,
                    icon="alert-circle",
                    buttons=[AlertButton(text="OK")],
                )
            )
        except Exception:
            logger.exception("Alert presenter failed")
