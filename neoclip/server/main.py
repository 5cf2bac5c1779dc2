from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from neoclip.config import CORS_ORIGINS
from neoclip.server.routers.debug_routes import debug_router
from neoclip.server.routers.generation_routes import generation_router
from neoclip.server.routers.user_routes import user_router

app = FastAPI()

# Add CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,  # Allows requests from these origins
    allow_credentials=True,
    allow_methods=["*"],  # Allows all methods (GET, POST, etc.)
    allow_headers=["*"],  # Allows all headers
)


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    # Malformed or mistyped request bodies are reported as 400
    return JSONResponse(
        status_code=400,
        content={
            "detail": {"error": "Invalid request", "errors": jsonable_encoder(exc.errors())}
        },
    )


@app.get("/", tags=["root"])
def root():
    return {"message": "success"}


# Include the routers in the main app with a prefix
app.include_router(generation_router, prefix="/generation")
app.include_router(user_router, prefix="/users")
app.include_router(debug_router, prefix="/debug")

if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=8080)
