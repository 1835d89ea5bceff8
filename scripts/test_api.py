"""
API Test Script
===============

Simple script to exercise the Campus Assistant API endpoints.

Run the API server first:
    uvicorn campus_rag.main:app --reload --port 3000

Then run this script:
    python scripts/test_api.py
"""

import asyncio
import httpx
import json
from typing import Optional

BASE_URL = "http://localhost:3000/api"


async def test_health():
    """Test health endpoint."""
    print("\n" + "=" * 50)
    print("Testing Health Endpoint")
    print("=" * 50)

    async with httpx.AsyncClient() as client:
        response = await client.get(f"{BASE_URL}/health")
        print(f"Status: {response.status_code}")
        print(f"Response: {json.dumps(response.json(), indent=2, ensure_ascii=False)}")
        return response.json()


async def test_stats():
    """Test knowledge stats endpoint."""
    print("\n" + "=" * 50)
    print("Testing Knowledge Stats")
    print("=" * 50)

    async with httpx.AsyncClient() as client:
        response = await client.get(f"{BASE_URL}/knowledge/stats")
        print(f"Status: {response.status_code}")
        print(f"Response: {json.dumps(response.json(), indent=2, ensure_ascii=False)}")
        return response.json()


async def test_complete(message: str, history: Optional[list] = None):
    """Test the non-streaming chat endpoint."""
    print("\n" + "=" * 50)
    print(f"Testing Chat: {message}")
    print("=" * 50)

    async with httpx.AsyncClient(timeout=120.0) as client:
        response = await client.post(
            f"{BASE_URL}/chat/complete",
            json={"message": message, "history": history or []},
        )
        print(f"Status: {response.status_code}")

        if response.status_code == 200:
            result = response.json()
            routing = result["routing"]
            print(f"\nAnswer:\n{result['answer']}")
            print(f"\nRouted to: {routing['agent']} (needsRAG={routing['needsRAG']})")
            print(f"Verification: {result['verification_status']}  offline={result['offline']}")
            print(f"Processing Time: {result['processing_time_ms']:.2f}ms")
            for source in result["sources"]:
                print(f"  - [{source['id']}] {source['question']} ({source['score']:.2f})")
            return result
        else:
            print(f"Error: {response.text}")
            return None


async def test_stream(message: str):
    """Test the SSE chat endpoint and print each event as it arrives."""
    print("\n" + "=" * 50)
    print(f"Testing Stream: {message}")
    print("=" * 50)

    async with httpx.AsyncClient(timeout=120.0) as client:
        async with client.stream("POST", f"{BASE_URL}/chat", json={"message": message}) as response:
            print(f"Status: {response.status_code}")
            async for line in response.aiter_lines():
                if not line.startswith("data: "):
                    continue
                event = json.loads(line[len("data: "):])
                if event["type"] == "text":
                    print(event["content"], end="", flush=True)
                elif event["type"] == "trace":
                    print(f"\n[trace:{event['step']}]")
                else:
                    print(f"\n[{event['type']}] {json.dumps(event, ensure_ascii=False)}")


async def run_all_tests():
    """Run all API tests."""
    print("\n" + "#" * 60)
    print("# Campus Assistant - API Tests")
    print("#" * 60)

    health = await test_health()
    if health["status"] != "ok":
        print("ERROR: API is not healthy!")
        return
    if not health["llm_configured"]:
        print("WARNING: no LLM key configured, answers will be offline demo text")

    await test_stats()

    test_messages = [
        "图书馆几点开门？",
        "食堂有哪些推荐的菜？",
        "帮我制定一个期末复习计划",
        "最近压力好大，睡不着",
        "你好",
    ]

    for message in test_messages:
        await test_complete(message)

    await test_stream("宿舍几点熄灯？")

    print("\n" + "=" * 50)
    print("Testing Multi-turn Conversation")
    print("=" * 50)

    first = await test_complete("选课什么时候开始？")
    if first:
        await test_complete(
            "那退课呢？",
            history=[
                {"role": "user", "content": "选课什么时候开始？"},
                {"role": "assistant", "content": first["answer"]},
            ],
        )

    print("\n" + "#" * 60)
    print("# All Tests Complete!")
    print("#" * 60)


if __name__ == "__main__":
    print("Starting API Tests...")
    print("Make sure the API server is running at http://localhost:3000")
    asyncio.run(run_all_tests())
