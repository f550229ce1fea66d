"""
Backend de negocio MediSense AI.

Estructura:
- config.py       : configuración desde entorno (.env)
- db.py           : handle del almacén (engine + sesiones SQLAlchemy)
- models.py       : modelos ORM de pacientes, códigos, casos, citas e historial
- auth_*.py       : médicos, hashing de passwords y tokens JWT
- services.py     : registro de pacientes, casos/citas desde la IA, historial
- verificacion.py : códigos de verificación de un solo uso
- correo.py       : envío del código por email (SMTP)
- api_main.py     : API REST (FastAPI)
- seed.py / cli.py: datos de demostración y operación por consola
"""
