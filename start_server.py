"""
Start the Transcript Desk server for local development
"""
import uvicorn
import sys

if __name__ == "__main__":
    print("Starting Transcript Desk...")
    print(f"Python: {sys.version}")

    try:
        uvicorn.run(
            "transcript_desk.main:app",
            host="127.0.0.1",
            port=8000,
            reload=True,
            log_level="info"
        )
    except KeyboardInterrupt:
        print("\nServer stopped by user")
