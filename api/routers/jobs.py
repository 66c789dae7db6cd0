"""
后台任务管理 API 路由
"""
from typing import Dict

from fastapi import APIRouter, Path, Depends

from api.dependencies import get_jobs
from api.schemas.job import JobResultInfo, JobStatusInfo, JobRestartRequest
from api.schemas.response import APIResponse
from core.scheduler import JobManager

router = APIRouter()


@router.get("", response_model=APIResponse[Dict[str, JobStatusInfo]])
async def get_job_status(jobs: JobManager = Depends(get_jobs)):
    """全部任务状态"""
    return APIResponse(data=jobs.get_status())


@router.post("/{job_name}/run", response_model=APIResponse[JobResultInfo])
async def run_job(
    job_name: str = Path(..., description="任务名"),
    jobs: JobManager = Depends(get_jobs),
):
    """
    立即执行一次任务

    任务正在执行时返回 skipped=true
    """
    result = await jobs.run_job_once(job_name)
    return APIResponse(data=JobResultInfo(**result.to_dict()))


@router.post("/{job_name}/restart", response_model=APIResponse[JobStatusInfo])
async def restart_job(
    request: JobRestartRequest,
    job_name: str = Path(..., description="任务名"),
    jobs: JobManager = Depends(get_jobs),
):
    """以新的间隔重新调度任务"""
    status = await jobs.restart_job(job_name, request.interval_minutes)
    return APIResponse(data=status.to_dict())
