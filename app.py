from fastapi import FastAPI, Request
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import JSONResponse
from pydantic import ValidationError
from typing import Any, Dict, List, Optional
import asyncio
import os
import logging
from ai_client import ImageGenerationError, OpenRouterClient, UnrecognizedImageResponse
from broker import BrokerError, InternalFault, InvalidRequest, ModelResponseBroker
from config import load_settings
from github_ops import GitHubOps, RepositoryUnavailable
from models import ChatRequest, Deployment, DeployFile, DeployRequest, ImageRequest, PublishRequest
from records_api import BadBody, read_json_object, router as records_router
from storage import RecordStore

settings = load_settings()

logging.basicConfig(level=getattr(logging, settings.log_level, logging.INFO))
logger = logging.getLogger("codecraft")

app = FastAPI(title="CodeCraft API")
app.state.settings = settings
app.state.store = RecordStore(settings.data_dir)
app.include_router(records_router)

logger.info("Records directory: %s", os.path.abspath(settings.data_dir))
logger.info("Chat candidates: %s (fallback %s)", ", ".join(settings.default_models), settings.fallback_model)


def _credential_override(req: Request) -> Optional[str]:
    # x-openrouter-key wins; only a Bearer Authorization header counts as a key
    key = req.headers.get("x-openrouter-key")
    if key:
        return key
    auth = req.headers.get("authorization") or ""
    if auth.strip().lower().startswith("bearer "):
        return auth.strip()
    return None


def _snapshot_files(files: Optional[Dict[str, Any]]) -> Dict[str, str]:
    out = {}
    for path, file in (files or {}).items():
        if isinstance(file, str):
            out[path] = file
        elif isinstance(file, dict):
            out[path] = str(file.get("content") or "")
        else:
            out[path] = "" if file is None else str(file)
    return out


@app.post("/api/chat")
async def api_chat(req: Request):
    state = req.app.state
    conversation = None
    try:
        try:
            payload = await read_json_object(req)
        except BadBody as e:
            raise InvalidRequest(str(e))
        try:
            chat = ChatRequest.model_validate(payload)
        except ValidationError as e:
            raise InvalidRequest(f"Payload validation failed: {e}")

        if chat.conversation_id:
            conversation = state.store.conversations.find(chat.conversation_id)
            if conversation is None:
                logger.warning("Unknown conversation %s; answering without stored context", chat.conversation_id)
            else:
                updates = {}
                if chat.history is None:
                    updates["history"] = [{"role": m.role, "content": m.content} for m in conversation.messages]
                if not chat.memory_summary and conversation.use_memory and conversation.memory.summary:
                    updates["memory_summary"] = conversation.memory.summary
                chat = chat.model_copy(update=updates)

        broker = ModelResponseBroker(state.settings)
        reply = await run_in_threadpool(broker.respond, chat, _credential_override(req), req.headers.get("x-model"))
    except BrokerError as e:
        logger.warning("Chat request rejected (%s): %s", e.status_code, e.message)
        return JSONResponse(status_code=e.status_code, content=e.to_payload())
    except Exception:
        logger.exception("Chat API error")
        fault = InternalFault()
        return JSONResponse(status_code=fault.status_code, content=fault.to_payload())

    if conversation is not None:
        try:
            state.store.conversations.append_message(conversation.id, "user", chat.message)
            state.store.conversations.append_message(conversation.id, "assistant", reply.message, reply.model)
        except Exception:
            logger.exception("Failed to record chat turn in conversation %s", conversation.id)

    return reply.dump()


@app.post("/api/image")
async def api_image(req: Request):
    state = req.app.state
    try:
        try:
            body = ImageRequest.model_validate(await read_json_object(req))
        except (BadBody, ValidationError) as e:
            return JSONResponse(status_code=400, content={"error": f"Invalid request: {e}"})

        if not body.prompt or not isinstance(body.prompt, str):
            return JSONResponse(status_code=400, content={"error": "Missing prompt"})

        api_key = req.headers.get("x-openrouter-key") or state.settings.openrouter_api_key
        if not api_key:
            return JSONResponse(
                status_code=401,
                content={"error": "Missing OpenRouter API key (pass x-openrouter-key header or set env)"},
            )

        client = OpenRouterClient.from_settings(api_key, state.settings)
        return await run_in_threadpool(
            client.generate_image,
            body.prompt,
            body.model or state.settings.image_model,
            body.size,
            body.image_base64,
            req.headers.get("referer"),
        )
    except ImageGenerationError as e:
        content = {"error": e.message}
        if isinstance(e, UnrecognizedImageResponse):
            content["raw"] = e.details
        else:
            content["details"] = e.details
        return JSONResponse(status_code=e.status_code, content=content)
    except Exception as e:
        logger.exception("Image API error")
        return JSONResponse(status_code=500, content={"error": "Unexpected error", "message": str(e)})


@app.post("/api/deploy")
async def api_deploy(req: Request):
    state = req.app.state
    try:
        dr = DeployRequest.model_validate(await read_json_object(req))
        if not dr.project_id:
            raise ValueError("projectId is required")

        # Simulated build; there is no real deployment pipeline behind this.
        await asyncio.sleep(state.settings.deploy_delay)
        deployment_url = f"https://project-{dr.project_id[:8]}.vercel.app"

        project = state.store.projects.find(dr.project_id)
        if dr.files is not None:
            files = _snapshot_files(dr.files)
        else:
            files = dict(project.files) if project else {}
        deployment = state.store.deployments.put(
            Deployment(project_id=dr.project_id, url=deployment_url, snapshot_files=files)
        )
        state.store.projects.set_deployment_url(dr.project_id, deployment_url)
    except Exception:
        logger.exception("Deployment failed")
        return JSONResponse(status_code=500, content={"success": False, "error": "Deployment failed"})

    logger.info("Deployed project %s -> %s (%d files)", dr.project_id, deployment_url, len(files))
    return {
        "success": True,
        "deploymentUrl": deployment_url,
        "deploymentId": deployment.id,
        "message": "Project deployed successfully!",
    }


@app.post("/api/github")
async def api_github(req: Request):
    state = req.app.state
    try:
        pr = PublishRequest.model_validate(await read_json_object(req))
    except (BadBody, ValidationError) as e:
        return JSONResponse(status_code=400, content={"error": f"Invalid request: {e}"})

    if not pr.owner or not pr.repo or not pr.token:
        return JSONResponse(status_code=400, content={"error": "Missing owner/repo/token"})

    files: List[DeployFile] = list(pr.files or [])
    if not files and pr.deployment_id:
        deployment = state.store.deployments.find(pr.deployment_id)
        if deployment is not None:
            files = [DeployFile(path=p, content=c) for p, c in deployment.snapshot_files.items()]
    if not files and pr.project_id:
        project = state.store.projects.find(pr.project_id)
        if project is not None:
            files = [DeployFile(path=p, content=c) for p, c in project.files.items()]
    if not files:
        return JSONResponse(status_code=400, content={"error": "No files provided"})

    branch = pr.branch or "main"
    try:
        gh = GitHubOps(pr.token, state.settings.github_api_url)
        url = await run_in_threadpool(gh.publish, pr.owner, pr.repo, files, branch, pr.create_repo)
    except RepositoryUnavailable as e:
        return JSONResponse(status_code=400, content={"error": str(e)})
    except Exception as e:
        logger.exception("GitHub publish failed for %s/%s", pr.owner, pr.repo)
        return JSONResponse(status_code=500, content={"error": str(e) or "GitHub deploy failed"})

    logger.info("Published %d files to %s/%s@%s", len(files), pr.owner, pr.repo, branch)
    return {"ok": True, "url": url}


@app.get("/health")
def health():
    return {"ok": True}


@app.get("/debug")
def debug_info(req: Request):
    """Return runtime diagnostics.

    Never returns secret values, only whether they are configured.
    """
    s = req.app.state.settings
    return {
        "cwd": os.getcwd(),
        "data_dir": os.path.abspath(s.data_dir),
        "OPENROUTER_API_KEY_set": bool(s.openrouter_api_key),
        "openrouter_base_url": s.openrouter_base_url,
        "chat_models": s.default_models,
        "allowed_models": s.allowed_models,
        "fallback_model": s.fallback_model,
        "image_model": s.image_model,
    }


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host=os.environ.get("HOST", "0.0.0.0"), port=int(os.environ.get("PORT", "8000")))
