"""Redis-backed read projection of projects, tasks and users."""

from __future__ import annotations

from typing import Optional

from redis import Redis

from survival.models.directory import ProjectRecord, TaskRecord, UserRecord


class RedisProjectDirectory:
    """Serves the flat project/task/user records the surrounding application publishes."""

    def __init__(self, client: Redis) -> None:
        self._client = client

    def upsert_project(self, project: ProjectRecord) -> None:
        self._client.set(self._project_key(project.project_id), project.model_dump_json())

    def upsert_task(self, project_id: str, task: TaskRecord) -> None:
        self._client.hset(self._tasks_key(project_id), task.task_id, task.model_dump_json())

    def upsert_user(self, user: UserRecord) -> None:
        login = user.github_username or user.username
        if not login:
            raise ValueError("User record requires a github_username or username")
        self._client.set(self._user_key(login), user.model_dump_json())

    def get_project(self, project_id: str) -> Optional[ProjectRecord]:
        data = self._client.get(self._project_key(project_id))
        if not data:
            return None
        return ProjectRecord.model_validate_json(data)

    def done_tasks(self, project_id: str) -> list[TaskRecord]:
        values = self._client.hvals(self._tasks_key(project_id))
        tasks = [TaskRecord.model_validate_json(value) for value in values]
        return sorted((task for task in tasks if task.status == "DONE"), key=lambda task: task.task_id)

    def find_user_by_username(self, login: str) -> Optional[UserRecord]:
        data = self._client.get(self._user_key(login))
        if not data:
            return None
        return UserRecord.model_validate_json(data)

    @staticmethod
    def _project_key(project_id: str) -> str:
        return f"directory:project:{project_id}"

    @staticmethod
    def _tasks_key(project_id: str) -> str:
        return f"directory:project:{project_id}:tasks"

    @staticmethod
    def _user_key(login: str) -> str:
        return f"directory:user:{login.lower()}"
