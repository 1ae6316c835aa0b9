# Utils package for Beckah backend
