import uvicorn

from rentmatch.config import settings

if __name__ == "__main__":
    uvicorn.run("rentmatch.main:app", host=settings.HOST, port=settings.PORT, reload=False)
