import uvicorn

if __name__ == "__main__":
    # Set SYMBOLSPACE_STORAGE_DIR to persist symbols as JSON lines

    print("Starting SymbolSpace API Server...")
    print("Docs available at: http://localhost:8000/docs")

    uvicorn.run(
        "symbolspace.api.server:app",
        host="0.0.0.0",
        port=8000,
        reload=True
    )
