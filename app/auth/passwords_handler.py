import bcrypt
import asyncio

# Short-lived six digit codes; a lower cost keeps verification fast
OTP_HASH_ROUNDS = 10


async def hash_otp_async(code: str) -> str:
    loop = asyncio.get_running_loop()
    salt = await loop.run_in_executor(None, bcrypt.gensalt, OTP_HASH_ROUNDS)
    hashed = await loop.run_in_executor(None, bcrypt.hashpw, code.encode('utf-8'), salt)
    return hashed.decode('utf-8')


async def verify_otp_async(code: str, code_hash: str) -> bool:
    # Verify the code against the stored hash
    loop = asyncio.get_running_loop()
    return await loop.run_in_executor(
        None, bcrypt.checkpw, code.encode('utf-8'), code_hash.encode('utf-8')
    )
