import uvicorn

from ptw.main import app

if __name__ == "__main__":
    uvicorn.run("ptw.main:app", host="0.0.0.0", port=8000)
